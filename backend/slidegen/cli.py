from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from slidegen.engine import SlideGenerationEngine
from slidegen.errors import SlideGenerationError
from slidegen.providers.factory import get_provider
from slidegen.schemas import GenerationParams
from slidegen.services.trace import configure_runtime_logging
from slidegen.services.validation import safe_validate_slide_spec


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate structured slide specs from a prompt.")
    parser.add_argument("prompt", nargs="?", help="Free-text description of the slide or deck.")
    parser.add_argument("--slides", type=int, default=1, help="Number of slides (default: 1).")
    parser.add_argument("--image", action="store_true", help="Also generate image prompts.")
    parser.add_argument("--length", choices=["short", "medium", "long"], default="medium")
    parser.add_argument("--audience", default=None)
    parser.add_argument("--tone", default=None)
    parser.add_argument("--provider", default=None, help="Provider name (openai, anthropic, minimax, mock).")
    parser.add_argument(
        "--validate",
        type=Path,
        default=None,
        help="Validate an existing slide spec JSON file instead of generating.",
    )
    parser.add_argument("--out", type=Path, default=None, help="Optional output JSON path.")
    return parser.parse_args(argv)


def _write(payload: object, out: Path | None) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if out is None:
        print(text)
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(text + "\n", encoding="utf-8")
    print(f"Wrote {out}")


def _validate_file(path: Path) -> int:
    if not path.exists():
        print(f"File not found: {path}")
        return 1
    try:
        candidate = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        print(f"Invalid JSON in {path}: {exc}")
        return 1
    result = safe_validate_slide_spec(candidate)
    if result.success:
        print("valid")
        return 0
    for error in result.errors:
        print(error)
    return 2


async def _generate(args: argparse.Namespace) -> list[dict]:
    params = GenerationParams(
        prompt=args.prompt,
        audience=args.audience,
        tone=args.tone,
        content_length=args.length,
        with_image=args.image,
    )
    engine = SlideGenerationEngine(get_provider(args.provider))
    try:
        if args.slides > 1:
            specs = await engine.generate_batch_slide_specs(params, args.slides)
        else:
            specs = [await engine.generate_slide_spec(params)]
    finally:
        await engine.aclose()
    return [spec.to_payload() for spec in specs]


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s %(message)s")
    configure_runtime_logging()

    if args.validate is not None:
        return _validate_file(args.validate)
    if not args.prompt:
        print("A prompt is required unless --validate is given.")
        return 1
    if args.slides < 1:
        print("--slides must be at least 1")
        return 1

    try:
        payload = asyncio.run(_generate(args))
    except PydanticValidationError as exc:
        print(f"Invalid parameters: {exc}")
        return 1
    except SlideGenerationError as exc:
        print(f"Generation failed: {exc}")
        return 3
    _write(payload[0] if len(payload) == 1 else payload, args.out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
