"""CLI entry point for tqkit."""

from __future__ import annotations

import click


@click.group()
def main() -> None:
    """tqkit: plugin packs and data access for FastAPI apps."""


@main.command()
@click.option("--config", default="configs/app.toml", help="Config file path")
@click.option("--dir", "dirs", multiple=True, help="Extra pack directory (repeatable)")
@click.option("--module", "modules", multiple=True, help="Extra pack module (repeatable)")
def packages(config: str, dirs: tuple[str, ...], modules: tuple[str, ...]) -> None:
    """List discovered packs and their resource files."""
    from .core.config import load_settings
    from .packages import PackageManager, PackOptions

    settings = load_settings(config_path=config)
    options = PackOptions.from_config(settings.packages)
    for directory in dirs:
        options.add_pack_dir(directory)
    for module in modules:
        options.add_module(module)

    packs = PackageManager(options).get_packs()
    if not packs:
        click.echo("No packs found.")
        return

    click.echo(f"{'NAME':20s} {'ORDER':>5s}  {'MODULE':40s} RESOURCES")
    for package in packs:
        cultures = ", ".join(p.stem for p in package.resource_files) or "-"
        click.echo(
            f"{package.name:20s} {package.order:>5d}  {package.module.__name__:40s} {cultures}"
        )


@main.command()
@click.option("--config", default="configs/app.toml", help="Config file path")
@click.option("--host", default=None, help="Bind host (overrides config)")
@click.option("--port", default=None, type=int, help="Bind port (overrides config)")
def serve(config: str, host: str | None, port: int | None) -> None:
    """Build the app from config and serve it with uvicorn."""
    import uvicorn

    from .main import create_app

    app = create_app(config_path=config)
    settings = app.state.settings
    uvicorn.run(
        app,
        host=host or settings.server.host,
        port=port or settings.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
