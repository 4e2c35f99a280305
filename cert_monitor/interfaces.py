"""
服务接口定义
"""
from abc import ABC, abstractmethod
from .models import CertificateFacts, EndpointReport


class EndpointProberInterface(ABC):
    """端点探测器接口"""

    @abstractmethod
    def probe(self, endpoint: str) -> CertificateFacts:
        """探测单个端点的叶子证书"""
        pass


class NotifierInterface(ABC):
    """通知服务接口"""

    @abstractmethod
    def deliver(self, subject: str, body: str) -> None:
        """发送一条通知，失败时抛出DeliveryError"""
        pass


class LoggerServiceInterface(ABC):
    """日志服务接口"""

    @abstractmethod
    def log_run_start(self, endpoint_count: int):
        """记录运行开始"""
        pass

    @abstractmethod
    def log_endpoint_report(self, report: EndpointReport):
        """记录端点检查结果"""
        pass

    @abstractmethod
    def log_probe_error(self, endpoint: str, error: Exception):
        """记录探测错误"""
        pass
