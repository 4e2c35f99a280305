"""
端点探测器测试
"""
import pytest
from unittest.mock import patch, MagicMock
from datetime import datetime, timezone
import ssl
import socket
import time

from cert_monitor.services import endpoint_prober
from cert_monitor.services.endpoint_prober import (
    EndpointProber,
    create_tls_context,
    parse_endpoint,
)
from cert_monitor.services.error_handler import ProbeError
from cert_monitor.models import CertificateFacts

from conftest import make_certificate, der_bytes, closed_port


class TestParseEndpoint:
    """端点解析测试类"""

    def test_default_port(self):
        assert parse_endpoint("example.com") == ("example.com", 443)

    def test_explicit_port(self):
        assert parse_endpoint("example.com:8443") == ("example.com", 8443)

    def test_strips_scheme_and_path(self):
        assert parse_endpoint("https://Example.com:8443/health") == ("example.com", 8443)
        assert parse_endpoint("  http://example.com/  ") == ("example.com", 443)

    def test_ipv6(self):
        assert parse_endpoint("[::1]:8443") == ("::1", 8443)
        assert parse_endpoint("[2001:db8::1]") == ("2001:db8::1", 443)
        assert parse_endpoint("2001:db8::1") == ("2001:db8::1", 443)

    @pytest.mark.parametrize("endpoint", ["", "   ", "example.com:abc", "example.com:0", "example.com:70000"])
    def test_invalid(self, endpoint):
        with pytest.raises(ProbeError):
            parse_endpoint(endpoint)


class TestTLSContext:
    """TLS上下文测试类"""

    def test_peer_verification_disabled_by_default(self):
        """默认不校验对端身份"""
        assert endpoint_prober.VERIFY_PEER_IDENTITY is False

        context = create_tls_context()

        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False

    def test_peer_verification_enabled(self):
        context = create_tls_context(verify_peer=True)

        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname is True


class TestEndpointProber:
    """端点探测器测试类"""

    def setup_method(self):
        """测试前准备"""
        self.prober = EndpointProber(timeout=5)

    @pytest.mark.parametrize("timeout", [0, -1, float('inf'), float('-inf'), float('nan')])
    def test_invalid_timeout(self, timeout):
        """超时时间必须是有限正数"""
        with pytest.raises(ValueError):
            EndpointProber(timeout=timeout)

    def test_extract_facts(self):
        """测试证书信息提取"""
        not_after = datetime(2030, 3, 1, 12, 0, tzinfo=timezone.utc)
        cert, _ = make_certificate("www.example.com", ("www.example.com", "example.com", "api.example.com"), not_after)

        facts = self.prober._extract_facts(der_bytes(cert))

        assert facts.common_name == "www.example.com"
        assert facts.alternate_names == ("www.example.com", "example.com", "api.example.com")
        assert facts.not_after == not_after.astimezone().date()

    def test_extract_facts_without_san_and_cn(self):
        """测试缺少通用名称和备用名称的证书"""
        cert, _ = make_certificate(common_name=None, alt_names=())

        facts = self.prober._extract_facts(der_bytes(cert))

        assert facts.common_name == ""
        assert facts.alternate_names == ()

    @patch('cert_monitor.services.endpoint_prober.socket.create_connection')
    @patch('cert_monitor.services.endpoint_prober.create_tls_context')
    def test_get_peer_certificate_success(self, mock_context, mock_connection):
        """测试成功获取证书"""
        mock_sock = MagicMock()
        mock_connection.return_value.__enter__.return_value = mock_sock

        mock_ssl_sock = MagicMock()
        mock_ssl_sock.getpeercert.return_value = b"der"
        mock_context.return_value.wrap_socket.return_value.__enter__.return_value = mock_ssl_sock

        der = self.prober._get_peer_certificate("example.com", 443)

        assert der == b"der"
        mock_connection.assert_called_once_with(("example.com", 443), timeout=5)
        mock_context.return_value.wrap_socket.assert_called_once_with(mock_sock, server_hostname="example.com")
        mock_ssl_sock.getpeercert.assert_called_once_with(binary_form=True)

    @patch('cert_monitor.services.endpoint_prober.socket.create_connection')
    def test_probe_connection_timeout(self, mock_connection):
        """测试连接超时"""
        mock_connection.side_effect = socket.timeout("timed out")

        with pytest.raises(ProbeError) as exc_info:
            self.prober.probe("slow.example.com")

        assert exc_info.value.endpoint == "slow.example.com"
        assert isinstance(exc_info.value.cause, socket.timeout)

    @patch('cert_monitor.services.endpoint_prober.socket.create_connection')
    def test_probe_dns_failure(self, mock_connection):
        """测试DNS解析失败"""
        mock_connection.side_effect = socket.gaierror(-2, "Name or service not known")

        with pytest.raises(ProbeError):
            self.prober.probe("nonexistent.invalid")

    @patch('cert_monitor.services.endpoint_prober.socket.create_connection')
    @patch('cert_monitor.services.endpoint_prober.create_tls_context')
    def test_probe_handshake_failure_closes_socket(self, mock_context, mock_connection):
        """测试握手失败时连接被关闭"""
        mock_context.return_value.wrap_socket.side_effect = ssl.SSLError("handshake failure")

        with pytest.raises(ProbeError):
            self.prober.probe("example.com")

        mock_connection.return_value.__exit__.assert_called_once()

    @patch.object(EndpointProber, '_get_peer_certificate')
    def test_probe_no_certificate(self, mock_get_cert):
        """测试服务器未提供证书"""
        mock_get_cert.return_value = None

        with pytest.raises(ProbeError, match="未提供证书"):
            self.prober.probe("example.com")

    @patch.object(EndpointProber, '_get_peer_certificate')
    def test_probe_malformed_certificate(self, mock_get_cert):
        """测试证书无法解析"""
        mock_get_cert.return_value = b"not a certificate"

        with pytest.raises(ProbeError):
            self.prober.probe("example.com")

    @patch.object(EndpointProber, '_get_peer_certificate')
    def test_probe_success(self, mock_get_cert):
        """测试成功探测"""
        cert, _ = make_certificate("example.com", ("example.com",))
        mock_get_cert.return_value = der_bytes(cert)

        facts = self.prober.probe("https://example.com:8443")

        assert isinstance(facts, CertificateFacts)
        assert facts.common_name == "example.com"
        mock_get_cert.assert_called_once_with("example.com", 8443)


class TestEndpointProberLocalServer:
    """使用本地TLS服务器的探测测试"""

    def test_probe_self_signed_certificate(self, tls_server):
        """自签名证书也能被读取"""
        not_after = datetime(2029, 11, 20, 12, 0, tzinfo=timezone.utc)
        server = tls_server("self-signed.test", ("self-signed.test", "alt.self-signed.test"), not_after)

        facts = EndpointProber(timeout=5).probe(server.endpoint)

        assert facts.common_name == "self-signed.test"
        assert facts.alternate_names == ("self-signed.test", "alt.self-signed.test")
        assert facts.not_after == not_after.astimezone().date()

    def test_stalled_handshake_times_out(self):
        """接受TCP连接但不完成握手的端点在超时后被放弃"""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
            listener.bind(("127.0.0.1", 0))
            listener.listen(1)
            port = listener.getsockname()[1]

            started = time.monotonic()
            with pytest.raises(ProbeError) as exc_info:
                EndpointProber(timeout=0.5).probe(f"127.0.0.1:{port}")
            elapsed = time.monotonic() - started

        assert isinstance(exc_info.value.cause, (socket.timeout, TimeoutError))
        assert elapsed < 5

    def test_probe_refused(self):
        with pytest.raises(ProbeError) as exc_info:
            EndpointProber(timeout=2).probe(f"127.0.0.1:{closed_port()}")

        assert isinstance(exc_info.value.cause, OSError)
