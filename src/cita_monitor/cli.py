import asyncio

import click

from . import __version__
from .config import DEFAULT_PAGE_URL, AppConfig, ConfigManager, RunMode, StorageType
from .errors import CitaMonitorError, ConfigError


def _mask(token: str) -> str:
    if len(token) <= 15:
        return "***"
    return f"{token[:10]}...{token[-5:]}"


def _load_or_exit(config_manager: ConfigManager) -> AppConfig:
    try:
        return config_manager.load()
    except ConfigError as e:
        click.echo(f"❌ {e}")
        click.echo("   Run 'cita-monitor init' or set TELEGRAM_BOT_TOKEN")
        raise SystemExit(1)


config_dir_option = click.option(
    "--config-dir",
    type=click.Path(),
    default=None,
    help="Configuration directory"
)


@click.group(name="cita-monitor", help="Consulate appointment monitor Telegram bot")
def cli():
    pass


@cli.command(help="Show version")
def version():
    click.echo(f"cita-monitor {__version__}")


@cli.command(help="Create the configuration interactively")
@config_dir_option
def init(config_dir):
    config_manager = ConfigManager(config_dir)

    click.echo("🚀 Appointment monitor - initial setup\n")

    if config_manager.exists():
        try:
            existing = config_manager.load_raw() or {}
        except ConfigError as e:
            click.echo(f"⚠️ {e}")
            existing = {}
        click.echo("Existing configuration found:")
        click.echo(f"  Bot Token: {_mask(existing.get('bot_token', ''))}")
        click.echo(f"  Page: {existing.get('page_url', DEFAULT_PAGE_URL)}")
        if not click.confirm("\nOverwrite it?", default=False):
            click.echo("Cancelled")
            return

    click.echo("\n1. Telegram Bot Token")
    click.echo("   Get one from @BotFather")
    bot_token = click.prompt("   Bot Token", type=str)

    click.echo("\n2. Tracked page")
    page_url = click.prompt("   Page URL", type=str, default=DEFAULT_PAGE_URL)
    row_keyword = click.prompt("   Row keyword", type=str, default="Pasaportesrenova")

    click.echo("\n3. Check interval")
    check_interval = click.prompt("   Seconds between checks", type=click.IntRange(60, 86400), default=600)

    click.echo("\n4. Update mode")
    click.echo("   [1] development (long polling)")
    click.echo("   [2] production (webhook)")
    mode_choice = click.prompt("   Choice", type=click.Choice(["1", "2"]), default="1")

    webhook_url = None
    webhook_secret = None
    env = RunMode.DEVELOPMENT
    if mode_choice == "2":
        env = RunMode.PRODUCTION
        webhook_url = click.prompt("   Public base URL (https://...)", type=str)
        webhook_secret = click.prompt("   Webhook secret token", type=str, hide_input=True)

    try:
        config = AppConfig(
            bot_token=bot_token,
            page_url=page_url,
            row_keyword=row_keyword,
            check_interval=check_interval,
            env=env,
            webhook_url=webhook_url,
            webhook_secret=webhook_secret,
        )
    except ValueError as e:
        click.echo(f"\n❌ Invalid configuration: {e}")
        return

    config_manager.save(config)
    click.echo(f"\n✅ Configuration saved to: {config_manager.config_path}")
    click.echo("\nStart the service with 'cita-monitor run'")


@cli.command(help="Show the current configuration")
@config_dir_option
def config(config_dir):
    config_manager = ConfigManager(config_dir)
    cfg = _load_or_exit(config_manager)

    click.echo("📋 Current configuration:\n")
    click.echo(f"  Bot Token: {_mask(cfg.bot_token)}")
    click.echo(f"  Page: {cfg.page_url}")
    click.echo(f"  Row keyword: {cfg.row_keyword}")
    click.echo(f"  Confirm marker: {cfg.confirm_marker}")
    click.echo(f"  Check interval: {cfg.check_interval}s")
    click.echo(f"  Mode: {cfg.env.value}")
    if not cfg.is_development:
        click.echo(f"  Webhook: {cfg.webhook_endpoint} (port {cfg.webhook_port})")
    click.echo(f"  Storage: {cfg.storage.value}")
    click.echo()
    click.echo(f"  Config file: {config_manager.config_path}")
    click.echo(f"  Database: {config_manager.db_path}")


@cli.command(help="Check the page once and print the result, without sending anything")
@config_dir_option
def check(config_dir):
    from .app import create_source
    from .detector import ChangeDetector

    cfg = _load_or_exit(ConfigManager(config_dir))
    source = create_source(cfg)

    try:
        snapshot = source.fetch(cfg.page_url)
    except CitaMonitorError as e:
        click.echo(f"❌ {e}")
        raise SystemExit(1)

    decision = ChangeDetector(cfg.confirm_marker).evaluate(snapshot)
    click.echo(f"  Title: {snapshot.title or '-'}")
    click.echo(f"  Last opening: {snapshot.last_known_date or '-'}")
    click.echo(f"  Next opening: {snapshot.current_date or '-'}")
    if decision.should_notify:
        click.echo("\n🔔 Decision: notify")
    else:
        click.echo(f"\n🔕 Decision: suppress ({decision.reason})")


@cli.command(help="List subscribed chat ids")
@config_dir_option
def subscribers(config_dir):
    from .app import create_backend
    from .storage import SubscriberStore

    config_manager = ConfigManager(config_dir)
    cfg = _load_or_exit(config_manager)

    try:
        store = SubscriberStore(create_backend(cfg, config_manager.get_db_path()))
        members = sorted(store.list_all())
    except CitaMonitorError as e:
        click.echo(f"❌ {e}")
        raise SystemExit(1)

    click.echo(f"👥 {len(members)} subscriber(s)")
    for chat_id in members:
        click.echo(f"  {chat_id}")


@cli.command(help="Start the monitor service")
@config_dir_option
@click.option(
    "--memory",
    is_flag=True,
    help="Keep subscribers in memory only"
)
@click.option(
    "--once",
    is_flag=True,
    help="Run a single check cycle and exit"
)
def run(config_dir, memory, once):
    config_manager = ConfigManager(config_dir)
    cfg = _load_or_exit(config_manager)
    if memory:
        cfg.storage = StorageType.MEMORY

    from .app import Application, create_backend, setup_logging
    from .storage import SubscriberStore

    log_dir = config_manager.config_dir / "logs"
    setup_logging(log_dir)

    try:
        store = SubscriberStore(create_backend(cfg, config_manager.get_db_path()))
    except CitaMonitorError as e:
        click.echo(f"❌ {e}")
        raise SystemExit(1)

    app = Application(config=cfg, store=store)

    if once:
        result = asyncio.run(app.run_once())
        click.echo(f"Subscribers: {result.subscribers}, skipped: {result.skipped_reason or 'no'}")
        return

    click.echo("🚀 Starting appointment monitor...")
    click.echo(f"   Page: {cfg.page_url}")
    click.echo(f"   Mode: {cfg.env.value}")
    click.echo(f"   Log dir: {log_dir}\n")
    app.run()


def main():
    cli()


if __name__ == "__main__":
    main()
