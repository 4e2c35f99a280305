"""
端点证书探测服务
"""
import math
import ssl
import socket
from typing import Optional, Tuple
import logging

from cryptography import x509
from cryptography.x509.oid import NameOID

from ..interfaces import EndpointProberInterface
from ..models import CertificateFacts
from .error_handler import ProbeError


DEFAULT_PORT = 443
DEFAULT_TIMEOUT = 10.0

# 监控器只读取证书自身声明的字段，不做信任链校验。
# 证书已损坏或自签名的端点同样需要被报告，因此默认关闭对端身份验证。
VERIFY_PEER_IDENTITY = False


def create_tls_context(verify_peer: bool = VERIFY_PEER_IDENTITY) -> ssl.SSLContext:
    """
    创建TLS客户端上下文

    Args:
        verify_peer: 是否校验对端证书链和主机名

    Returns:
        ssl.SSLContext: TLS上下文
    """
    if verify_peer:
        return ssl.create_default_context()

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    # check_hostname 必须先于 verify_mode 关闭
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def parse_endpoint(endpoint: str, default_port: int = DEFAULT_PORT) -> Tuple[str, int]:
    """
    解析端点为主机和端口

    支持 "host"、"host:port"、"[ipv6]:port"，并容忍 https:// 前缀和路径。

    Args:
        endpoint: 端点字符串
        default_port: 未指定端口时使用的端口

    Returns:
        Tuple[str, int]: (主机, 端口)

    Raises:
        ProbeError: 端点格式无效
    """
    value = (endpoint or "").strip()

    # 移除协议前缀
    if value.startswith('https://'):
        value = value[8:]
    elif value.startswith('http://'):
        value = value[7:]

    # 移除路径部分
    value = value.split('/')[0]

    port_text = ""
    if value.startswith('['):
        host, _, rest = value[1:].partition(']')
        if rest.startswith(':'):
            port_text = rest[1:]
    elif value.count(':') == 1:
        host, _, port_text = value.partition(':')
    else:
        # 无端口，或未加方括号的IPv6地址
        host = value

    host = host.strip().lower()
    if not host:
        raise ProbeError(endpoint, message="端点为空")

    port = default_port
    if port_text:
        try:
            port = int(port_text)
        except ValueError:
            raise ProbeError(endpoint, message=f"端口无效: {port_text}")
        if not 0 < port < 65536:
            raise ProbeError(endpoint, message=f"端口超出范围: {port}")

    return host, port


class EndpointProber(EndpointProberInterface):
    """端点探测器实现"""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, verify_peer: bool = VERIFY_PEER_IDENTITY):
        """
        初始化端点探测器

        Args:
            timeout: 连接和握手超时时间（秒），必须为正数
            verify_peer: 是否校验对端身份，默认关闭
        """
        if timeout is None or not math.isfinite(timeout) or timeout <= 0:
            raise ValueError(f"超时时间必须为正数: {timeout!r}")

        self.timeout = timeout
        self.verify_peer = verify_peer
        self.logger = logging.getLogger(__name__)

    def probe(self, endpoint: str) -> CertificateFacts:
        """
        探测单个端点的叶子证书

        Args:
            endpoint: 端点（host 或 host:port）

        Returns:
            CertificateFacts: 证书信息

        Raises:
            ProbeError: 解析、连接、握手失败或未获取到证书
        """
        host, port = parse_endpoint(endpoint)
        self.logger.debug(f"连接 {host}:{port}，超时 {self.timeout} 秒")

        try:
            der_cert = self._get_peer_certificate(host, port)
        except (OSError, UnicodeError) as e:
            # ssl.SSLError、socket.timeout、socket.gaierror 均为 OSError 子类
            raise ProbeError(endpoint, e) from e

        if not der_cert:
            raise ProbeError(endpoint, message=f"服务器 {host}:{port} 未提供证书")

        try:
            return self._extract_facts(der_cert)
        except ValueError as e:
            raise ProbeError(endpoint, e) from e

    def _get_peer_certificate(self, host: str, port: int) -> Optional[bytes]:
        """
        建立TLS连接并读取叶子证书（DER格式）

        连接在返回或出错时都会关闭。
        """
        context = create_tls_context(self.verify_peer)

        with socket.create_connection((host, port), timeout=self.timeout) as sock:
            with context.wrap_socket(sock, server_hostname=host) as ssock:
                return ssock.getpeercert(binary_form=True)

    def _extract_facts(self, der_cert: bytes) -> CertificateFacts:
        """
        从DER证书中提取通用名称、备用名称和过期日期

        Args:
            der_cert: DER编码的证书

        Returns:
            CertificateFacts: 证书信息
        """
        cert = x509.load_der_x509_certificate(der_cert)

        common_names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        common_name = str(common_names[0].value) if common_names else ""

        try:
            san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
            alternate_names = tuple(san.value.get_values_for_type(x509.DNSName))
        except x509.ExtensionNotFound:
            alternate_names = ()

        # 以本机时区的日历日期为准，与过期判定使用的“今天”一致
        not_after = cert.not_valid_after_utc.astimezone().date()

        return CertificateFacts(
            common_name=common_name,
            alternate_names=alternate_names,
            not_after=not_after
        )
