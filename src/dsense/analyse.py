"""File driver: read paths, run detection per file in parallel, roll up results"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from time import time

from dsense import prometheus as prom
from dsense.classify import risk_score, summarize_signals
from dsense.detect.router import AUTO, PROFILES, resolve_profile
from dsense.models import DetectorOptions, FileSignals, ScanResult
from dsense.patterns import PatternRegistry, PatternRegistryDetector
from dsense.utils import get_max_workers

logger = logging.getLogger(__name__)

# Extensions picked up when walking a directory; explicit file paths are always analysed
SOURCE_EXTENSIONS = ('.js', '.jsx', '.mjs', '.cjs', '.ts', '.tsx', '.mts', '.cts', '.vue', '.svelte', '.astro')
SKIPPED_DIRS = ('node_modules', 'dist', 'build', '.git', '.next', '.nuxt', '.svelte-kit')


def collect_files(paths: list[str]) -> list[str]:
    """Expand paths into a file list, walking directories for source files."""
    files = []
    for path in paths:
        if os.path.isfile(path):
            files.append(path)
        elif os.path.isdir(path):
            for root, dirs, names in os.walk(path):
                dirs[:] = sorted(d for d in dirs if d not in SKIPPED_DIRS and not d.startswith('.'))
                for name in sorted(names):
                    if name.endswith(SOURCE_EXTENSIONS):
                        files.append(os.path.join(root, name))
        else:
            logger.warning(f'Path not found: {path}')
    return files


def read_source(path: str) -> str:
    """Read a file as UTF-8 text.

    Raises:
        OSError: The file cannot be opened.
        UnicodeDecodeError: The file is not UTF-8 text.
    """
    with open(path, encoding='utf-8') as f:
        return f.read()


def analyse_file(
    path: str,
    options: DetectorOptions | None = None,
    profile: str = AUTO,
    registry: PatternRegistry | None = None,
    framework: str | None = None,
) -> FileSignals:
    """Detect signals for one file on disk.

    With a ``registry`` the pattern-registry detector runs instead of the
    routed profile detector.

    Raises:
        OSError, UnicodeDecodeError: The file cannot be read as text.
        UnknownProfileError: ``profile`` is not recognised.
    """
    content = read_source(path)

    if registry is not None:
        name = f'patterns:{framework}' if framework else 'patterns'
        signals = PatternRegistryDetector(registry).detect(content, path, options, framework)
    else:
        name = resolve_profile(content, path, profile)
        signals = PROFILES[name].detect(content, path, options)

    logger.debug(f'{path}: {len(signals)} signals ({name})')
    return FileSignals(
        path=path,
        profile=name,
        signals=signals,
        summary=summarize_signals(signals),
        risk=risk_score(signals),
    )


def analyse_paths(
    paths: list[str],
    options: DetectorOptions | None = None,
    profile: str = AUTO,
    max_workers: int | None = None,
    registry: PatternRegistry | None = None,
    framework: str | None = None,
) -> ScanResult:
    """
    Analyse files at given paths.

    Args:
        paths: List of file or directory paths
        options: Changed ranges and context width applied to every file
        profile: Detector profile name, or 'auto'
        max_workers: Maximum number of parallel workers (DSENSE_MAX_WORKERS when None)
        registry: Use the pattern-registry detector with this registry
        framework: Registry framework filter

    Returns:
        ScanResult with per-file signals in input order and the skipped paths
    """
    start_time = time()
    files = collect_files(paths)
    workers = max_workers or get_max_workers()

    results: dict[int, FileSignals] = {}
    skipped: list[str] = []

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_file = {
            executor.submit(analyse_file, path, options, profile, registry, framework): (index, path)
            for index, path in enumerate(files)
        }

        for future in as_completed(future_to_file):
            index, path = future_to_file[future]
            try:
                result = future.result()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f'Skipping {path}: {e}')
                prom.files_skipped_total.inc()
                skipped.append(path)
                continue
            results[index] = result
            prom.files_analysed_total.labels(profile=result.profile).inc()
            for signal in result.signals:
                prom.signals_emitted_total.labels(category=signal.category, severity=signal.severity).inc()

    elapsed_time = time() - start_time
    prom.analyse_duration_seconds.observe(elapsed_time)
    logger.debug(f'Analysed {len(results)} files, skipped {len(skipped)} in {elapsed_time:.3f}s')

    return ScanResult(
        files=[results[i] for i in sorted(results)],
        skipped=sorted(skipped, key=files.index),
        time=elapsed_time,
    )
