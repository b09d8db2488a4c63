import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import ValidationError

from deepviz.config.settings import default_output_dir, load_settings
from deepviz.core.errors import DeepvizError
from deepviz.core.pipeline import PipelineOptions, run_pipeline

VERSION = "0.1.0"

DEFAULT_CONFIG = {
    "api_key": "",
    "deep_research_agent": "deep-research-pro-preview-12-2025",
    "poll_interval": 10,
    "poll_timeout": 600,
    "model": "gemini-3-pro-image-preview",
    "aspect_ratio": "16:9",
    "image_size": "2K",
    "image_lang": "Japanese",
    "auto_open": True,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        "deepviz", description="Investigación y generación de infografías con la API de Gemini"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-p", "--prompt", default="", help="Prompt de investigación")
    parser.add_argument("-f", "--file", type=Path, help="Archivo con el prompt")
    parser.add_argument("-o", "--output", type=Path, help="Directorio de salida")
    parser.add_argument("-v", "--verbose", action="store_true", help="Logs en nivel DEBUG")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--research-only", action="store_true", help="Solo investigación")
    mode.add_argument(
        "--no-image", dest="research_only", action="store_true", help="Igual que --research-only"
    )
    mode.add_argument("--image-only", action="store_true", help="Solo generación de imagen")
    parser.add_argument("--model", help="Modelo de imagen (p.ej. gemini-3-pro-image-preview)")
    parser.add_argument("--aspect-ratio", help="Relación de aspecto: 16:9, 4:3, 1:1, 9:16, 3:4")
    parser.add_argument("--image-size", help="Tamaño de imagen: 2K, 4K")
    parser.add_argument("--no-open", action="store_true", help="No abrir la imagen al terminar")

    sub = parser.add_subparsers(dest="cmd")
    cfg = sub.add_parser("config", help="Gestión de la configuración")
    cfg_sub = cfg.add_subparsers(dest="config_cmd", required=True)
    cfg_sub.add_parser("show", help="Muestra la configuración actual")
    init = cfg_sub.add_parser("init", help="Crea el archivo de configuración")
    init.add_argument("--config-dir", type=Path, help="Directorio de configuración")
    return parser


def _config_show() -> int:
    s = load_settings()
    print("Current Configuration:")
    print(f"  output_dir: {s.output_dir}")
    print(f"  api_key: {s.masked_api_key()}")
    print(f"  deep_research_agent: {s.deep_research_agent}")
    print(f"  poll_interval: {s.poll_interval:g}")
    print(f"  poll_timeout: {s.poll_timeout:g}")
    print(f"  model: {s.model}")
    print(f"  aspect_ratio: {s.aspect_ratio}")
    print(f"  image_size: {s.image_size}")
    print(f"  image_lang: {s.image_lang}")
    print(f"  auto_open: {str(s.auto_open).lower()}")
    return 0


def _config_init(config_dir: Path | None) -> int:
    # valores por defecto explícitos, sin heredar entorno ni un config.yaml previo
    s = load_settings(config_dir, output_dir=default_output_dir(), **DEFAULT_CONFIG)
    path = s.save()
    print(f"Config file created: {path}")
    return 0


def _run(args: argparse.Namespace) -> int:
    overrides = {}
    if args.output:
        overrides["output_dir"] = args.output
    if args.model:
        overrides["model"] = args.model
    if args.aspect_ratio:
        overrides["aspect_ratio"] = args.aspect_ratio
    if args.image_size:
        overrides["image_size"] = args.image_size
    settings = load_settings(**overrides)

    opts = PipelineOptions(
        prompt=args.prompt,
        file=args.file,
        research_only=args.research_only,
        image_only=args.image_only,
        verbose=args.verbose,
        no_open=args.no_open,
    )
    result = asyncio.run(run_pipeline(opts, settings))

    print("\n=== Pipeline Completed ===")
    print(f"Timestamp: {result.timestamp}")
    if result.research:
        print(f"Research: {result.research.markdown_path}")
    if result.image:
        print(f"Image: {result.image.image_path}")
    print(f"Output directory: {result.output_dir}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.cmd == "config":
            if args.config_cmd == "show":
                return _config_show()
            if args.config_cmd == "init":
                return _config_init(args.config_dir)

        if not args.prompt and not args.file:
            parser.print_help()
            # código 2 suele indicar 'uso incorrecto de CLI'
            return 2
        return _run(args)
    except KeyboardInterrupt:
        print("\n[i] Interrumpido por el usuario.", file=sys.stderr)
        return 130
    except ValidationError as e:
        print(f"[!] Configuración inválida: {e}", file=sys.stderr)
        return 1
    except DeepvizError as e:
        print(f"[!] {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
