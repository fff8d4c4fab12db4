"""Detector composition: a generic battery plus optional framework layers."""

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from dsense.detect.rules import FileContext, Probe, Rule, scan_rules
from dsense.models import DetectorOptions, Signal

logger = logging.getLogger(__name__)

Applies = Callable[[str, str], bool]
VariantClassifier = Callable[[str, str], str | None]


def always(path: str, content: str) -> bool:
    return True


@dataclass(frozen=True)
class FrameworkLayer:
    """A bundle of rules and probes gated by a file-level predicate.

    ``applies(path, content)`` is evaluated once per file, never per line.
    """

    name: str
    applies: Applies = always
    rules: tuple[Rule, ...] = ()
    probes: tuple[Probe, ...] = ()

    def run(self, ctx: FileContext) -> list[Signal]:
        """Run rules then probes, without checking ``applies``."""
        signals = scan_rules(ctx, self.rules)
        for probe in self.probes:
            signals.extend(probe(ctx))
        return signals


@dataclass(frozen=True)
class Variant:
    """Rules and probes specific to one runtime or meta-framework variant."""

    rules: tuple[Rule, ...] = ()
    probes: tuple[Probe, ...] = ()


def dispatch_variant(classifier: VariantClassifier, variants: Mapping[str, Variant]) -> Probe:
    """Probe that classifies the file once and runs the matching variant.

    Files whose variant is None, or has no entry, get no variant signals.
    """

    def probe(ctx: FileContext) -> list[Signal]:
        variant_name = classifier(ctx.path, ctx.content)
        variant = variants.get(variant_name) if variant_name else None
        if variant is None:
            return []
        signals = scan_rules(ctx, variant.rules)
        for variant_probe in variant.probes:
            signals.extend(variant_probe(ctx))
        return signals

    return probe


@dataclass(frozen=True)
class Detector:
    """Concatenation of a base layer and zero or more framework layers.

    The base layer always runs; every other layer contributes only when its
    ``applies`` predicate holds for the file.
    """

    name: str
    base: FrameworkLayer
    layers: Sequence[FrameworkLayer] = field(default_factory=tuple)

    def detect(self, content: str, path: str, options: DetectorOptions | None = None) -> list[Signal]:
        """Detect signals for one file.

        Args:
            content: File content; split on newlines.
            path: File path, used only for string matching.
            options: Changed ranges and context width.

        Returns:
            Signals from the base layer followed by applicable layers.
        """
        ctx = FileContext.build(content, path, options)
        signals = self.base.run(ctx)
        for layer in self.layers:
            if layer.applies(path, content):
                signals.extend(layer.run(ctx))
            else:
                logger.debug(f'[{self.name}] layer {layer.name} does not apply to {path}')
        logger.debug(f'[{self.name}] {path}: {len(signals)} signals')
        return signals
