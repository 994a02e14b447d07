"""Built in DNS providers and the provider base class"""

from .provider import Provider, ObservedRecord

from . import aliyun
from . import cloudflare
from . import godaddy
from . import huawei
from . import tencent

providers = {
    'aliyun': aliyun.AliyunProvider,
    'cloudflare': cloudflare.CloudflareProvider,
    'godaddy': godaddy.GoDaddyProvider,
    'huawei': huawei.HuaweiProvider,
    'tencent': tencent.TencentProvider,
}

__all__ = ['Provider', 'ObservedRecord']
