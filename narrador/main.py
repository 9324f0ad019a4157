"""
Entrada principal del Narrador.

    narrador serve                      # servidor HTTP (uvicorn)
    narrador render --text "..."        # un render desde la terminal
"""
import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from .config import Settings
from .domain.models import RenderRequest
from .errors import RenderError
from .orchestrator import RenderOrchestrator
from .publisher import create_storage

logger = logging.getLogger(__name__)
console = Console()

PHASES = {
    "contenido": "Consultando API de contenido...",
    "descarga": "Descargando assets...",
    "timeline": "Armando timeline y audio...",
    "composicion": "Generando subtítulos y grafo...",
    "encode": "Renderizando video...",
    "subida": "Subiendo video...",
}


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def build_orchestrator(settings: Settings, client: httpx.AsyncClient) -> RenderOrchestrator:
    return RenderOrchestrator(settings, client, create_storage(settings))


def serve(settings: Settings) -> None:
    """Levanta el servidor HTTP."""
    import uvicorn

    from .server import create_app

    client = httpx.AsyncClient(follow_redirects=True)

    @asynccontextmanager
    async def lifespan(app):
        yield
        await client.aclose()

    app = create_app(build_orchestrator(settings, client), lifespan=lifespan)
    console.print(Panel(
        f"[bold cyan]Narrador[/bold cyan] escuchando en http://{settings.host}:{settings.port}",
        title="Servidor",
    ))
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


async def render_once(settings: Settings, request: RenderRequest) -> Optional[str]:
    """Un render desde la terminal con progreso en consola."""
    console.print(Panel(f"[bold cyan]Render[/bold cyan]: {request.text[:60]}", title="Narrador"))

    async with httpx.AsyncClient(follow_redirects=True) as client:
        orchestrator = build_orchestrator(settings, client)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Iniciando...", total=1.0)

            def on_progress(phase: str, fraction: float):
                progress.update(task, description=PHASES.get(phase, phase), completed=fraction)

            try:
                result = await orchestrator.render(request, on_progress=on_progress)
            except RenderError as e:
                console.print(f"[red]✗ {e.code}: {e.message}[/red]")
                return None

    where = "URL" if result.is_remote else "Archivo local"
    console.print(f"\n[bold green]🎬 {where}: {result.location}[/bold green]")
    console.print(f"[green]Duración: {result.duration:.2f}s[/green]\n")
    return result.location


def main(argv=None) -> int:
    "Punto de entrada CLI."
    parser = argparse.ArgumentParser(
        description="Narrador - Renderizador de videos narrados",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Ruta al YAML de configuración")
    parser.add_argument("--env-file", help="Archivo .env alternativo")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("serve", help="Levantar el servidor HTTP")

    render = subparsers.add_parser("render", help="Renderizar un video desde la terminal")
    render.add_argument("--text", required=True, help="Texto a narrar")
    render.add_argument("--language", default="en", help="Idioma (default: en)")
    render.add_argument("--style", default="style_1", choices=["style_1", "style_2", "style_3", "style_4"])
    render.add_argument("--resolution", choices=["480p", "720p", "1080p"])
    render.add_argument("--video-type", choices=["landscape", "portrait", "square"])
    render.add_argument("--compression", choices=["studio", "social_media", "web"])
    render.add_argument("--progress-bar", action="store_true", help="Mostrar barra de progreso")
    render.add_argument("--watermark", action="store_true", help="Agregar marca de agua")

    args = parser.parse_args(argv)
    settings = Settings.load(config_path=args.config, env_file=args.env_file)
    setup_logging(settings.log_level)

    if args.command == "serve":
        serve(settings)
        return 0

    if args.command == "render":
        request = RenderRequest(
            text=args.text,
            language=args.language,
            style=args.style,
            resolution=args.resolution,
            videoType=args.video_type,
            compression=args.compression,
            showProgressBar=True if args.progress_bar else None,
            watermark=True if args.watermark else None,
        )
        location = asyncio.run(render_once(settings, request))
        return 0 if location else 1

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
