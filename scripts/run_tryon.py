from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

import httpx
from rich.console import Console
from rich.table import Table

from mirrorx_tryon.config import configure_logging, load_config
from mirrorx_tryon.errors import TryOnError
from mirrorx_tryon.imaging import decode_inline, is_remote_url, parse_image_reference, reference_from_bytes
from mirrorx_tryon.orchestration import TryOnOrchestrator
from mirrorx_tryon.types import (
    GarmentCategory,
    Gender,
    ImageReference,
    Mode,
    StyleRecommendation,
    TryOnRequest,
)

EXTENSIONS = {"image/png": ".png", "image/jpeg": ".jpg", "image/webp": ".webp", "image/gif": ".gif"}


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate a virtual try-on image of a subject wearing a garment."
    )
    parser.add_argument("--subject", required=True, help="Path or URL of the subject photo.")
    parser.add_argument("--garment", required=True, help="Path or URL of the garment photo.")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in Mode],
        default=Mode.PART.value,
        help="PART replaces only the garment region; FULL_FIT styles a complete outfit.",
    )
    parser.add_argument(
        "--gender",
        choices=[gender.value for gender in Gender],
        default=Gender.FEMALE.value,
    )
    parser.add_argument(
        "--category",
        choices=[category.value for category in GarmentCategory],
        default=GarmentCategory.UPPER_BODY.value,
        help="Garment slot forwarded to dedicated try-on models.",
    )
    parser.add_argument(
        "--feedback",
        default=None,
        help="Optional feedback on a previous result to incorporate in this attempt.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("outputs/tryon"),
        help="Output path without extension (defaults to outputs/tryon).",
    )
    parser.add_argument(
        "--advice",
        action="store_true",
        help="Also request styling advice and shopping links for the garment.",
    )
    parser.add_argument(
        "--dotenv",
        type=Path,
        default=None,
        help="Optional path to a .env file containing provider credentials.",
    )
    return parser.parse_args()


def load_image(value: str) -> ImageReference:
    """Accept a URL, a data URI or a local file path."""
    if is_remote_url(value) or value.startswith("data:"):
        return parse_image_reference(value)
    path = Path(value)
    if not path.is_file():
        raise SystemExit(f"Image file not found: {path}")
    return reference_from_bytes(path.read_bytes())


async def save_image(image: ImageReference, output: Path) -> Path:
    if is_remote_url(image.to_display()):
        async with httpx.AsyncClient(timeout=httpx.Timeout(60.0)) as client:
            response = await client.get(image.to_display())
            response.raise_for_status()
        content = response.content
        mime_type = response.headers.get("Content-Type", "image/png").split(";")[0]
    else:
        content = decode_inline(image)
        mime_type = image.mime_type or "image/png"
    target = output.with_suffix(EXTENSIONS.get(mime_type, ".png"))
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    return target


def render_advice(console: Console, advice: StyleRecommendation) -> None:
    if advice.is_empty:
        console.print("[yellow]No styling advice available.[/yellow]")
        return
    console.rule("Styling advice")
    if advice.analysis:
        console.print(advice.analysis)
    for tip in advice.styling_tips:
        console.print(f"  • {tip}")
    if advice.complementary_items:
        table = Table(title="Complete the look")
        table.add_column("Item")
        table.add_column("Colour")
        table.add_column("Price")
        table.add_column("Shop")
        for item in advice.complementary_items:
            links = "\n".join(f"[link={link.url}]{link.store}[/link]" for link in item.shopping_links)
            table.add_row(f"{item.category}: {item.description}", item.color, item.price_range, links)
        console.print(table)


async def run(args: argparse.Namespace, console: Console) -> int:
    config = load_config(args.dotenv)
    request = TryOnRequest(
        subject_image=load_image(args.subject),
        garment_image=load_image(args.garment),
        mode=Mode(args.mode),
        gender=Gender(args.gender),
        prior_feedback=args.feedback,
        garment_category=GarmentCategory(args.category),
    )

    async with TryOnOrchestrator.from_config(config) as orchestrator:
        with console.status(f"Generating try-on ({orchestrator.strategy.name})..."):
            outcome = await orchestrator.generate_try_on(request)

        table = Table(title="Provider attempts")
        table.add_column("Provider")
        table.add_column("Model")
        table.add_column("Outcome")
        table.add_column("Latency (s)", justify="right")
        for attempt in outcome.attempted_providers:
            table.add_row(
                attempt.provider_id,
                attempt.model,
                attempt.outcome.value,
                f"{attempt.latency_seconds:.1f}",
            )
        console.print(table)

        try:
            image = outcome.unwrap()
        except TryOnError as exc:
            console.print(f"[red]{exc}[/red]")
            return 1

        saved = await save_image(image, args.output)
        note = " [yellow](face swap skipped or failed)[/yellow]" if outcome.degraded else ""
        console.print(f"[green]Try-on saved to[/green] {saved}{note}")

        if args.advice:
            with console.status("Requesting styling advice..."):
                advice = await orchestrator.get_style_advice(request.garment_image, request.mode)
            render_advice(console, advice)
    return 0


def main() -> None:
    args = parse_args()
    configure_logging()
    console = Console()
    try:
        raise SystemExit(asyncio.run(run(args, console)))
    except RuntimeError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
