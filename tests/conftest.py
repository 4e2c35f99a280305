"""
测试公共夹具：本地TLS服务器与自签名证书
"""
import socket
import ssl
import threading
from datetime import datetime, timezone, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID


DEFAULT_NOT_AFTER = datetime(2031, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_certificate(common_name="localhost", alt_names=("localhost",), not_after=DEFAULT_NOT_AFTER):
    """生成自签名证书，返回 (证书, 私钥)"""
    key = ec.generate_private_key(ec.SECP256R1())

    attributes = []
    if common_name:
        attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
    else:
        attributes.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, "No CN Org"))
    name = x509.Name(attributes)

    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_after - timedelta(days=365))
        .not_valid_after(not_after)
    )
    if alt_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(alt_name) for alt_name in alt_names]),
            critical=False
        )

    return builder.sign(key, hashes.SHA256()), key


def der_bytes(cert):
    return cert.public_bytes(serialization.Encoding.DER)


def closed_port():
    """返回一个当前无人监听的本地端口"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class LocalTLSServer:
    """在后台线程中完成TLS握手后立即关闭连接的服务器"""

    def __init__(self, directory, cert, key):
        self.certfile = directory / f"cert-{id(self)}.pem"
        self.keyfile = directory / f"key-{id(self)}.pem"
        self.certfile.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
        self.keyfile.write_bytes(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption()
        ))

        self.context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        self.context.load_cert_chain(str(self.certfile), str(self.keyfile))

        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(5)
        self.sock.settimeout(0.2)
        self.port = self.sock.getsockname()[1]

        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    @property
    def endpoint(self):
        return f"127.0.0.1:{self.port}"

    def start(self):
        self._thread.start()
        return self

    def stop(self):
        self._stopped.set()
        self._thread.join(timeout=5)
        self.sock.close()

    def _serve(self):
        while not self._stopped.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            conn.settimeout(5)
            try:
                with self.context.wrap_socket(conn, server_side=True) as tls_conn:
                    tls_conn.recv(1)
            except OSError:
                # 客户端读取证书后直接断开属于正常情况
                pass
            finally:
                conn.close()


@pytest.fixture
def tls_server(tmp_path):
    """启动本地TLS服务器的工厂夹具"""
    servers = []

    def start(common_name="localhost", alt_names=("localhost",), not_after=DEFAULT_NOT_AFTER):
        cert, key = make_certificate(common_name, alt_names, not_after)
        server = LocalTLSServer(tmp_path, cert, key).start()
        servers.append(server)
        return server

    yield start

    for server in servers:
        server.stop()
