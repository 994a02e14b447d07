import threading

import pytest

import ipupdater
from ipupdater.configuration import RetryPolicy
from ipupdater.retry import Retrier, TargetResult, TargetState, is_terminal


def failing(*errors):
    """Make a function raising each error in turn, then returning 'ok'"""
    remaining = list(errors)
    calls = []

    def func(*args):
        calls.append(args)
        if remaining:
            raise remaining.pop(0)
        return 'ok'
    func.calls = calls
    return func


def test_is_terminal():
    """Test terminal classification"""
    assert is_terminal(ipupdater.AuthenticationError())
    assert is_terminal(ipupdater.FatalSyncError('t', []))
    assert is_terminal(ValueError())
    assert not is_terminal(ipupdater.TransientNetworkError())
    assert not is_terminal(ipupdater.SyncError('t', []))
    assert not is_terminal(ipupdater.RecordNotFoundError())


def test_success_first_try():
    """Test a successful target is attempted once"""
    func = failing()
    result = Retrier(RetryPolicy(0, 3)).run(TargetResult('a', 'dns'),
                                             func, 'x')
    assert result.succeeded
    assert result.attempts == 1
    assert result.value == 'ok'
    assert func.calls == [('x',)]


def test_success_after_failures():
    """Test retryable failures are retried until success"""
    func = failing(ipupdater.TransientNetworkError(),
                   ipupdater.TransientNetworkError())
    result = Retrier(RetryPolicy(0, 5)).run(TargetResult('a', 'dns'), func)
    assert result.state == TargetState.SUCCEEDED
    assert result.attempts == 3
    assert result.error is None


def test_max_attempts_honored():
    """Test a limit of three means exactly three attempts"""
    errors = [ipupdater.TransientNetworkError() for _ in range(10)]
    func = failing(*errors)
    result = Retrier(RetryPolicy(0, 3)).run(TargetResult('a', 'file'), func)
    assert result.state == TargetState.FAILED_RETRYABLE
    assert result.attempts == 3
    assert len(func.calls) == 3
    assert isinstance(result.error, ipupdater.TransientNetworkError)


def test_terminal_not_retried():
    """Test a terminal failure stops after one attempt"""
    func = failing(ipupdater.AuthenticationError("denied"))
    result = Retrier(RetryPolicy(0, 5)).run(TargetResult('a', 'dns'), func)
    assert result.state == TargetState.FAILED_TERMINAL
    assert result.attempts == 1


def test_unexpected_error_terminal(caplog):
    """Test an unexpected exception is logged with its traceback and not
    retried"""
    func = failing(ZeroDivisionError())
    result = Retrier(RetryPolicy(0, 5)).run(TargetResult('a', 'dns'), func)
    assert result.state == TargetState.FAILED_TERMINAL
    assert result.attempts == 1
    assert 'Traceback' in caplog.text


def test_unbounded_retries():
    """Test -1 keeps retrying well past any small limit"""
    errors = [ipupdater.TransientNetworkError() for _ in range(20)]
    func = failing(*errors)
    result = Retrier(RetryPolicy(0, -1)).run(TargetResult('a', 'dns'), func)
    assert result.succeeded
    assert result.attempts == 21


def test_waits_interval_between_attempts(mocker):
    """Test the retry interval is waited between attempts, and not after
    the last"""
    stop = threading.Event()
    wait = mocker.patch.object(stop, 'wait', return_value=False)
    func = failing(*[ipupdater.TransientNetworkError() for _ in range(3)])
    Retrier(RetryPolicy(42, 3), stop).run(TargetResult('a', 'dns'), func)
    assert wait.call_args_list == [mocker.call(42), mocker.call(42)]


def test_stop_during_wait(mocker):
    """Test a stop while waiting abandons the target"""
    stop = threading.Event()
    mocker.patch.object(stop, 'wait', return_value=True)
    func = failing(ipupdater.TransientNetworkError())
    with pytest.raises(ipupdater.CancelledError):
        Retrier(RetryPolicy(60, 3), stop).run(TargetResult('a', 'dns'), func)
    assert len(func.calls) == 1


def test_stop_before_run():
    """Test nothing is attempted once a stop was requested"""
    stop = threading.Event()
    stop.set()
    func = failing()
    with pytest.raises(ipupdater.CancelledError):
        Retrier(RetryPolicy(0, 3), stop).run(TargetResult('a', 'dns'), func)
    assert func.calls == []


def test_cancel_from_target_propagates():
    """Test a CancelledError raised by the target is not retried"""
    func = failing(ipupdater.CancelledError())
    with pytest.raises(ipupdater.CancelledError):
        Retrier(RetryPolicy(0, 3)).run(TargetResult('a', 'dns'), func)
    assert len(func.calls) == 1


def test_attempt_limit():
    """Test the attempt limit of a policy"""
    assert RetryPolicy(60, 3).attempt_limit() == 3
    assert RetryPolicy(60, -1).attempt_limit() > 1000
