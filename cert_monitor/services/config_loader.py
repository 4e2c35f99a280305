"""
配置加载与验证服务
"""
import ipaddress
import math
import os
import re
from typing import Any, Dict, List, Mapping, Optional
import logging

import yaml

from ..models import Settings, SMTPSettings
from .endpoint_prober import parse_endpoint
from .error_handler import ConfigurationError, ProbeError


CONFIG_PATH_ENV_VAR = "CERT_MONITOR_CONFIG_PATH"
DEFAULT_CONFIG_PATH = "/etc/cert-monitor/config.yml"

DEFAULT_THRESHOLD_DAYS = 30
DEFAULT_SMTP_PORT = 25
DEFAULT_TIMEOUT = 10.0
DEFAULT_WORKERS = 1

# 主机名格式，允许内网单标签主机名
HOSTNAME_PATTERN = re.compile(
    r'^(?=.{1,253}$)(?:[a-zA-Z0-9_](?:[a-zA-Z0-9_-]{0,61}[a-zA-Z0-9])?\.)*'
    r'[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$'
)

logger = logging.getLogger(__name__)


def resolve_config_path(config_flag: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> str:
    """
    确定配置文件路径

    依次使用：--config 参数、CERT_MONITOR_CONFIG_PATH 环境变量、默认路径。
    """
    environ = os.environ if environ is None else environ

    if config_flag:
        return config_flag

    env_path = environ.get(CONFIG_PATH_ENV_VAR)
    if env_path:
        return env_path

    return DEFAULT_CONFIG_PATH


def load_settings(path: str) -> Settings:
    """
    从YAML文件加载配置

    Args:
        path: 配置文件路径

    Returns:
        Settings: 已验证的配置

    Raises:
        ConfigurationError: 文件无法读取、YAML无效或配置不合法
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"无法读取配置文件 {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"配置文件 {path} 解析失败: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"配置文件 {path} 的顶层必须是映射")

    settings = settings_from_mapping(data)
    logger.info(f"从 {path} 加载了 {len(settings.domains)} 个端点")
    return settings


def settings_from_mapping(data: Mapping[str, Any]) -> Settings:
    """
    从字典构造并验证配置

    Args:
        data: 与配置文件结构相同的字典

    Returns:
        Settings: 已验证的配置
    """
    smtp_data = data.get('smtp') or {}
    if not isinstance(smtp_data, dict):
        raise ConfigurationError("smtp 配置必须是映射")

    recipients = smtp_data.get('to') or []
    if isinstance(recipients, str):
        recipients = [recipients]
    if not isinstance(recipients, list):
        raise ConfigurationError("smtp.to 必须是列表")

    smtp = SMTPSettings(
        server=str(smtp_data.get('server') or ""),
        port=_as_int(smtp_data.get('port', DEFAULT_SMTP_PORT), 'smtp.port'),
        sender=str(smtp_data.get('from') or ""),
        recipients=tuple(str(recipient) for recipient in recipients),
        username=str(smtp_data.get('username') or ""),
        password=str(smtp_data.get('password') or ""),
    )

    domains = data.get('domains') or []
    if not isinstance(domains, list):
        raise ConfigurationError("domains 必须是列表")

    settings = Settings(
        domains=tuple(str(domain).strip() for domain in domains),
        threshold_days=_as_int(data.get('threshold', DEFAULT_THRESHOLD_DAYS), 'threshold'),
        smtp=smtp,
        sns_topic_arn=str(data.get('sns_topic_arn') or ""),
        timeout=_as_float(data.get('timeout', DEFAULT_TIMEOUT), 'timeout'),
        workers=_as_int(data.get('workers', DEFAULT_WORKERS), 'workers'),
    )

    validate_settings(settings)
    return settings


def settings_from_env(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    从环境变量构造配置（Lambda部署使用）

    DOMAINS 与 SMTP_TO 为逗号分隔列表。
    """
    environ = os.environ if environ is None else environ

    data: Dict[str, Any] = {
        'domains': _split_list(environ.get('DOMAINS', "")),
        'threshold': environ.get('EXPIRY_THRESHOLD_DAYS', DEFAULT_THRESHOLD_DAYS),
        'sns_topic_arn': environ.get('SNS_TOPIC_ARN', ""),
        'timeout': environ.get('PROBE_TIMEOUT', DEFAULT_TIMEOUT),
        'workers': environ.get('PROBE_WORKERS', DEFAULT_WORKERS),
        'smtp': {
            'server': environ.get('SMTP_SERVER', ""),
            'port': environ.get('SMTP_PORT', DEFAULT_SMTP_PORT),
            'from': environ.get('SMTP_FROM', ""),
            'to': _split_list(environ.get('SMTP_TO', "")),
            'username': environ.get('SMTP_USERNAME', ""),
            'password': environ.get('SMTP_PASSWORD', ""),
        },
    }

    return settings_from_mapping(data)


def validate_settings(settings: Settings) -> None:
    """
    验证配置

    Raises:
        ConfigurationError: 汇总所有发现的问题
    """
    errors = []

    for domain in settings.domains:
        if not validate_domain(domain):
            errors.append(f"域名格式无效: {domain!r}")

    if settings.threshold_days < 0:
        errors.append(f"threshold 不能为负数: {settings.threshold_days}")

    if settings.timeout <= 0:
        errors.append(f"timeout 必须为正数: {settings.timeout}")

    if settings.workers < 1:
        errors.append(f"workers 至少为1: {settings.workers}")

    smtp = settings.smtp
    if not 0 < smtp.port < 65536:
        errors.append(f"smtp.port 超出范围: {smtp.port}")
    if smtp.server:
        if not smtp.sender:
            errors.append("配置了 smtp.server 但缺少 smtp.from")
        if not smtp.recipients:
            errors.append("配置了 smtp.server 但缺少 smtp.to")

    if errors:
        for error in errors:
            logger.error(error)
        raise ConfigurationError("; ".join(errors))


def validate_domain(domain: str) -> bool:
    """
    验证端点格式（host 或 host:port）

    Args:
        domain: 端点

    Returns:
        bool: 是否有效
    """
    if not domain or not isinstance(domain, str):
        return False

    try:
        host, _ = parse_endpoint(domain)
    except ProbeError:
        return False

    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        pass

    return bool(HOSTNAME_PATTERN.match(host))


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ConfigurationError(f"{name} 必须是整数: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} 必须是整数: {value!r}") from e


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} 必须是数字: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} 必须是数字: {value!r}") from e
    # .inf / .nan 无法用作套接字超时
    if not math.isfinite(number):
        raise ConfigurationError(f"{name} 必须是有限数字: {value!r}")
    return number
