"""同步引擎的错误类型."""


class TailburrowError(Exception):
    """所有领域错误的基类."""


class AuthenticationError(TailburrowError):
    """凭据无效或被拒绝，对本次运行是致命的."""


class TransientFetchError(TailburrowError):
    """单个请求失败（网络错误、5xx 等），记录后继续."""


class UnavailableContentError(TailburrowError):
    """帖子没有可下载的文件."""


class StorageError(TailburrowError):
    """写入资料库磁盘失败."""


class ScrapeError(TailburrowError):
    """页面结构无法解析."""


class AlreadyRunningError(TailburrowError):
    """该来源已有同步在运行."""


class NotRunningError(TailburrowError):
    """该来源没有正在运行的同步."""


class LibraryNotConfiguredError(TailburrowError):
    """资料库根目录未设置."""


class InvalidOptionsError(TailburrowError):
    """启动参数无效."""


class CredentialsMissingError(TailburrowError):
    """未保存该来源的凭据."""
