"""
FIMO Command Line Interface

Renders photos through the vintage presets from the shell. Decoding the
input and encoding the output happen here; the engine only sees rasters.
"""

import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from tqdm import tqdm

from .config import get_config_value, get_default_config, load_config, save_config
from .errors import FimoError
from .io.images import encode_image
from .presets import PRESETS, list_presets
from .processing.lut import build_identity_lut, encode_lut_png
from .render import Renderer, RenderRequest
from .utils.logging import RenderStats, setup_console_logging

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp', '.tif', '.tiff', '.bmp',
                    '.arw', '.cr2', '.cr3', '.nef', '.dng', '.raf', '.orf', '.rw2'}


def format_timestamp(moment: datetime) -> str:
    """Date stamp text in the classic camera 'YY MM DD' form"""
    return moment.strftime("%y %m %d")


def _resolve_timestamp(timestamp: Optional[str], stamp_today: bool) -> Optional[str]:
    if timestamp:
        return timestamp
    if stamp_today:
        return format_timestamp(datetime.now())
    return None


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True, dir_okay=False),
              help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Suppress non-error output')
@click.pass_context
def main(ctx, config: Optional[str] = None, verbose: bool = False, quiet: bool = False):
    """
    FIMO - vintage camera looks for event photos

    Applies film presets (colour grade, grain, dust, vignette, light leaks,
    halation, instant-film borders and date stamps) to photos.
    """
    ctx.ensure_object(dict)
    ctx.obj['config'] = load_config(config)

    level = get_config_value(ctx.obj['config'], 'logging.level', 'INFO')
    if verbose:
        level = 'DEBUG'
    elif quiet:
        level = 'ERROR'
    setup_console_logging(level, fmt=get_config_value(
        ctx.obj['config'], 'logging.format',
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    ctx.obj['quiet'] = quiet


@main.command()
def presets():
    """List the available filter presets."""
    for preset in list_presets():
        lut = preset.lut or '-'
        frame = preset.frame_type.value
        click.echo(f"{preset.id:<14} {preset.name:<16} lut={lut:<16} frame={frame}")


@main.command()
@click.argument('input_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--preset', '-p', 'preset_id', default='ek80', show_default=True,
              type=click.Choice(sorted(PRESETS)), help='Filter preset')
@click.option('--output', '-o', type=click.Path(dir_okay=False),
              help='Output file (default: INPUT with suffix, as JPEG)')
@click.option('--timestamp', '-t', help='Literal date stamp text, e.g. "26 01 03"')
@click.option('--stamp-today', is_flag=True, help="Stamp today's date")
@click.option('--caption', help='Caption for bordered presets')
@click.option('--seed', type=int, help='Noise seed (default from config)')
@click.option('--scale', type=float, default=1.0, show_default=True, help='Output scale factor')
@click.pass_context
def render(ctx, input_path: str, preset_id: str, output: Optional[str], timestamp: Optional[str],
           stamp_today: bool, caption: Optional[str], seed: Optional[int], scale: float):
    """Render a single photo through a preset."""
    config = ctx.obj['config']
    renderer = Renderer(config)
    source = Path(input_path)
    target = Path(output) if output else _default_output(source, config)

    request = RenderRequest(
        preset_id=preset_id,
        source=source,
        timestamp=_resolve_timestamp(timestamp, stamp_today),
        caption=caption,
        seed=seed,
        scale=scale,
    )
    try:
        result = renderer.render_sync(request)
        encode_image(result.pixels, target, quality=get_config_value(config, 'output.jpeg_quality', 92))
    except (FimoError, OSError) as e:
        raise click.ClickException(str(e))

    if result.lut_degraded:
        click.echo(f"Warning: LUT unavailable, rendered without colour table ({result.lut_error})", err=True)
    if not ctx.obj['quiet']:
        click.echo(f"Wrote {target} ({result.width}x{result.height})")


@main.command()
@click.argument('directory', type=click.Path(exists=True, file_okay=False, dir_okay=True))
@click.option('--preset', '-p', 'preset_id', default='ek80', show_default=True,
              type=click.Choice(sorted(PRESETS)), help='Filter preset')
@click.option('--output-dir', '-o', type=click.Path(file_okay=False, dir_okay=True), required=True,
              help='Directory for rendered photos')
@click.option('--timestamp', '-t', help='Literal date stamp text')
@click.option('--stamp-today', is_flag=True, help="Stamp today's date")
@click.option('--caption', help='Caption for bordered presets')
@click.option('--seed', type=int, help='Noise seed (default from config)')
@click.option('--scale', type=float, default=1.0, show_default=True, help='Output scale factor')
@click.pass_context
def batch(ctx, directory: str, preset_id: str, output_dir: str, timestamp: Optional[str],
          stamp_today: bool, caption: Optional[str], seed: Optional[int], scale: float):
    """Render every photo in a directory."""
    config = ctx.obj['config']
    renderer = Renderer(config)
    files = sorted(p for p in Path(directory).iterdir()
                   if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS)
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    stamp = _resolve_timestamp(timestamp, stamp_today)
    quality = get_config_value(config, 'output.jpeg_quality', 92)

    stats = RenderStats()
    stats.set_total(len(files))
    for path in tqdm(files, desc=f"Rendering {preset_id}", disable=ctx.obj['quiet']):
        started = time.perf_counter()
        request = RenderRequest(preset_id=preset_id, source=path, timestamp=stamp,
                                caption=caption, seed=seed, scale=scale)
        try:
            result = renderer.render_sync(request)
            encode_image(result.pixels, _default_output(path, config, out_dir), quality=quality)
        except (FimoError, OSError) as e:
            logger.error(f"Failed to render {path}: {e}")
            stats.add_error(str(path), str(e))
            continue
        stats.add_result(result.lut_degraded, time.perf_counter() - started)

    if not ctx.obj['quiet']:
        click.echo(stats.format_summary())
    if stats.errors:
        sys.exit(1)


@main.command('make-lut')
@click.argument('output', type=click.Path(dir_okay=False))
@click.option('--size', type=int, default=512, show_default=True, help='LUT image size')
def make_lut(output: str, size: int):
    """Write an identity LUT image to use as a grading starting point."""
    try:
        lut = build_identity_lut(size)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--size')
    Path(output).write_bytes(encode_lut_png(lut))
    click.echo(f"Wrote {size}x{size} identity LUT to {output}")


@main.command('init-config')
@click.argument('output', type=click.Path(dir_okay=False))
@click.option('--defaults', is_flag=True, help='Write built-in defaults instead of the active configuration')
@click.option('--force', is_flag=True, help='Overwrite an existing file')
@click.pass_context
def init_config(ctx, output: str, defaults: bool, force: bool):
    """Write a configuration file to customise."""
    target = Path(output)
    if target.exists() and not force:
        raise click.ClickException(f"{target} already exists (use --force to overwrite)")
    config = get_default_config() if defaults else ctx.obj['config']
    if not save_config(config, target):
        raise click.ClickException(f"Could not write configuration to {target}")
    click.echo(f"Wrote configuration to {target}")


def _default_output(source: Path, config, out_dir: Optional[Path] = None) -> Path:
    suffix = get_config_value(config, 'output.suffix', '_fimo')
    return (out_dir or source.parent) / f"{source.stem}{suffix}.jpg"


if __name__ == '__main__':
    main()
