"""
命令行入口
"""
import argparse
import sys
from typing import List, Optional

from .models import RunOptions
from .monitor import CertificateMonitor
from .services.config_loader import load_settings, resolve_config_path
from .services.error_handler import ConfigurationError
from .services.logger import LoggerService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cert-monitor",
        description="检查配置端点的TLS证书，即将过期时发送通知"
    )
    parser.add_argument("--config", default="", help="配置文件路径")
    parser.add_argument("--summary", action="store_true", help="生成所有端点的汇总")
    parser.add_argument("--debug", action="store_true", help="输出调试日志")
    parser.add_argument("--json", action="store_true", help="日志输出为JSON格式")
    parser.add_argument("--print", dest="print_only", action="store_true",
                        help="汇总输出到标准输出，不发送任何通知")
    parser.add_argument("--include-unreachable", action="store_true",
                        help="汇总中包含探测失败的端点")
    parser.add_argument("--workers", type=int, default=None, help="并发探测数量，覆盖配置文件")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    命令行主函数

    Returns:
        int: 进程退出码，仅配置错误时为1
    """
    args = build_parser().parse_args(argv)

    logger_service = LoggerService(
        log_level="DEBUG" if args.debug else None,
        json_format=args.json
    )

    try:
        settings = load_settings(resolve_config_path(args.config))
        workers = args.workers if args.workers is not None else settings.workers
        if workers < 1:
            raise ConfigurationError(f"workers 至少为1: {workers}")

        monitor = CertificateMonitor.from_settings(
            settings, print_only=args.print_only, logger_service=logger_service
        )
        options = RunOptions(
            print_only=args.print_only,
            summary=args.summary,
            include_unreachable=args.include_unreachable,
            max_workers=workers
        )
    except ConfigurationError as e:
        logger_service.logger.error(f"配置无效: {e}")
        return 1

    monitor.run(settings.domains, settings.policy, options)
    return 0


if __name__ == "__main__":
    sys.exit(main())
