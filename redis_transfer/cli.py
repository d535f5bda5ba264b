"""
Redis Transfer工具的命令行界面。

把一个Redis实例的全部键（含TTL）复制到另一个实例。
"""

import sys
from contextlib import ExitStack
from pathlib import Path

import click
from dotenv import load_dotenv

from .config import Config, setup_logging, create_sample_config, load_config
from .connection_manager import RedisConnectionManager
from .engine import TransferEngine, TransferResult
from .exceptions import RedisTransferError, MigrationError
from .progress import LoggingProgressReporter, TqdmProgressReporter
from .snapshot import SnapshotWriter
from .utils import RetryPolicy, format_bytes, format_duration


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False), help='配置文件路径')
@click.option('--verbose', '-v', is_flag=True, help='启用详细日志')
@click.option('--quiet', '-q', is_flag=True, help='除错误外抑制输出')
@click.option('--env-file', type=click.Path(dir_okay=False), default='.env', show_default=True,
              help='启动时加载的环境变量文件（不覆盖已设置的变量）')
@click.pass_context
def cli(ctx, config, verbose, quiet, env_file):
    """Redis Transfer - 逐键复制Redis实例的全部数据。"""
    ctx.ensure_object(dict)

    if env_file and Path(env_file).is_file():
        load_dotenv(env_file, override=False)

    try:
        base_config = load_config(config)

        if verbose:
            base_config = base_config.with_overrides(logging={'level': 'DEBUG'})
        elif quiet:
            base_config = base_config.with_overrides(logging={'level': 'ERROR'})

        logging_config = base_config.with_env_overrides().logging
    except RedisTransferError as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    ctx.obj['config'] = base_config
    setup_logging(logging_config)


@cli.command()
@click.option('--output', '-o', type=click.Path(), default='redis-transfer.yaml',
              help='输出配置文件路径')
def init(output):
    """初始化示例配置文件。"""
    try:
        with open(output, 'w', encoding='utf-8') as f:
            f.write(create_sample_config())
    except OSError as e:
        click.echo(f"Error creating configuration: {e}", err=True)
        sys.exit(1)

    click.echo(f"Sample configuration created at: {output}")
    click.echo("Please edit the configuration file to match your Redis instances.")


def redis_options(prefix: str, label: str):
    """为源/目标实例生成连接参数选项。"""
    def decorator(func):
        options = [
            click.option(f'--{prefix}-host', help=f'{label}主机 [默认: localhost]'),
            click.option(f'--{prefix}-port', type=int, help=f'{label}端口 [默认: 6379]'),
            click.option(f'--{prefix}-username', help=f'{label}用户名'),
            click.option(f'--{prefix}-password', help=f'{label}密码'),
            click.option(f'--{prefix}-database', type=int, help=f'{label}数据库编号 [默认: 0]'),
        ]
        for option in reversed(options):
            func = option(func)
        return func
    return decorator


def _redis_overrides(kwargs: dict, prefix: str) -> dict:
    return {
        'host': kwargs.pop(f'{prefix}_host'),
        'port': kwargs.pop(f'{prefix}_port'),
        'username': kwargs.pop(f'{prefix}_username'),
        'password': kwargs.pop(f'{prefix}_password'),
        'db': kwargs.pop(f'{prefix}_database'),
    }


def _resolve_config(ctx, kwargs: dict) -> Config:
    config = ctx.obj['config'].with_overrides(
        source=_redis_overrides(kwargs, 'source'),
        destination=_redis_overrides(kwargs, 'destination'),
        transfer={
            'snapshot_path': kwargs.pop('dump_to_file', None),
            'skip': kwargs.pop('skip', None),
            'max_retries': kwargs.pop('max_retries', None),
            'retry_delay': kwargs.pop('retry_delay', None),
            'scan_count': kwargs.pop('scan_count', None),
        },
    )
    return config.with_env_overrides().validate()


@cli.command()
@redis_options('source', '源')
@redis_options('destination', '目标')
@click.option('--dump-to-file', type=click.Path(dir_okay=False), help='同时把读取的键写入快照文件')
@click.option('--skip', type=int, help='跳过前N个键（用于续传）')
@click.option('--max-retries', type=int, help='PTTL/DUMP失败时的最大重试次数 [默认: 3]')
@click.option('--retry-delay', type=float, help='首次重试前的等待秒数，之后指数增长 [默认: 0.5]')
@click.option('--scan-count', type=int, help='枚举键时SCAN的COUNT参数 [默认: 1000]')
@click.option('--no-progress', is_flag=True, help='逐行输出日志而不是显示进度条')
@click.pass_context
def copy(ctx, no_progress, **kwargs):
    """把源Redis实例的全部键复制到目标实例。"""
    try:
        config = _resolve_config(ctx, kwargs)
    except RedisTransferError as e:
        click.echo(f"Invalid configuration: {e}", err=True)
        sys.exit(1)

    try:
        with RedisConnectionManager() as conn_manager:
            source, destination = conn_manager.connect(
                config.source, config.destination, scan_count=config.transfer.scan_count
            )
            result = _run_transfer(config, source, destination, show_progress=not no_progress)
    except MigrationError as e:
        click.echo(f"Migration failed: {e}", err=True)
        if e.result is not None:
            _display_transfer_results(e.result)
            click.echo(f"Resume with: --skip {e.result.resume_offset}", err=True)
        sys.exit(1)
    except RedisTransferError as e:
        click.echo(f"Migration failed: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted", err=True)
        sys.exit(130)

    _display_transfer_results(result)


def _run_transfer(config: Config, source, destination, show_progress: bool = True) -> TransferResult:
    """在快照文件和进度报告器的作用域内执行迁移。"""
    settings = config.transfer
    retry_policy = RetryPolicy(
        max_retries=settings.max_retries,
        delay=settings.retry_delay,
        backoff_factor=settings.backoff_factor
    )

    with ExitStack() as stack:
        snapshot = None
        if settings.snapshot_path:
            snapshot = stack.enter_context(SnapshotWriter.open(settings.snapshot_path))

        reporter = TqdmProgressReporter() if show_progress else LoggingProgressReporter()
        stack.callback(reporter.close)

        engine = TransferEngine(
            source,
            destination,
            snapshot=snapshot,
            progress_callback=reporter,
            retry_policy=retry_policy
        )
        return engine.run(resume_offset=settings.skip)


@cli.command()
@redis_options('source', '源')
@redis_options('destination', '目标')
@click.pass_context
def check(ctx, **kwargs):
    """检查源和目标实例是否可以连接。"""
    try:
        config = _resolve_config(ctx, kwargs)
        with RedisConnectionManager() as conn_manager:
            source, destination = conn_manager.connect(config.source, config.destination)
            source.ping()
            destination.ping()
            source_info = conn_manager.get_source_info()
            target_info = conn_manager.get_target_info()
    except RedisTransferError as e:
        click.echo(f"Check failed: {e}", err=True)
        sys.exit(1)

    click.echo("=== Source Redis Info ===")
    _display_redis_info(source_info)
    click.echo("\n=== Destination Redis Info ===")
    _display_redis_info(target_info)


def _display_transfer_results(result: TransferResult):
    """Display transfer results."""
    click.echo(f"\n=== Transfer Results ===")
    click.echo(f"Total Keys: {result.total_keys}")
    click.echo(f"Copied Keys: {result.copied_keys}")
    click.echo(f"Conflict Keys: {result.conflict_keys}")
    click.echo(f"Vanished Keys: {result.vanished_keys}")
    click.echo(f"Skipped Keys: {result.skipped_keys}")
    click.echo(f"Retries: {result.retries}")
    click.echo(f"Transferred: {format_bytes(result.total_bytes)}")
    click.echo(f"Duration: {format_duration(result.duration)}")


def _display_redis_info(info: dict):
    """Display Redis instance information."""
    important_keys = [
        'redis_version', 'role', 'connected_clients', 'used_memory_human'
    ]

    for key in important_keys:
        if key in info:
            click.echo(f"{key.replace('_', ' ').title()}: {info[key]}")


def main():
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
