"""Instruction preset registry for the rewriting module."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from .errors import UnknownPreset


@dataclass(frozen=True)
class InstructionPreset:
    id: str
    title: str
    description: str
    category: str
    is_default: bool = False

    @property
    def instruction(self) -> str:
        return f"{self.title}: {self.description}"


def _preset(preset_id: str, title: str, description: str, category: str, is_default: bool = False) -> InstructionPreset:
    return InstructionPreset(preset_id, title, description, category, is_default)


INSTRUCTION_PRESETS: List[InstructionPreset] = [
    # Core humanization, selected by default
    _preset("mixed-cadence-sprawl", "Mixed cadence + clause sprawl",
            "Alternate short and long sentences; allow some long sentences to wander with extra clauses.",
            "core-humanization", True),
    _preset("asymmetric-emphasis", "Asymmetric emphasis",
            "Over-elaborate one point; compress or skate past another.", "core-humanization", True),
    _preset("one-aside", "One aside",
            "Add a quick parenthetical or em-dash remark, factual, not jokey.", "core-humanization", True),
    _preset("hedge-twice", "Hedge twice",
            'Use two mild uncertainty markers ("probably," "seems," "roughly," "I think").',
            "core-humanization", True),
    _preset("local-disfluency", "Local disfluency",
            "Keep one redundant or slightly awkward phrase that still makes sense.", "core-humanization", True),
    _preset("analogy-injection", "Analogy injection",
            "Insert a short, concrete comparison to something unrelated but illustrative.",
            "core-humanization", True),
    _preset("topic-snap", "Topic snap", "Abruptly shift focus once, then return.", "core-humanization", True),
    _preset("friction-detail", "Friction detail",
            "Drop in a small, seemingly unnecessary but real-world-plausible detail.", "core-humanization", True),
    # Structure & cadence
    _preset("compression-light", "Compression - light (-15%)",
            "Cut filler; merge short clauses; keep meaning.", "structure-cadence"),
    _preset("compression-medium", "Compression - medium (-30%)",
            "Trim hard; delete throat-clearing; tighten syntax.", "structure-cadence"),
    _preset("compression-heavy", "Compression - heavy (-45%)",
            "Sever redundancies; collapse repeats; keep core claims.", "structure-cadence"),
    _preset("decrease-50", "DECREASE BY 50%",
            "REDUCE THE LENGTH BY HALF WHILE PRESERVING MEANING", "structure-cadence"),
    _preset("increase-150", "INCREASE BY 150%",
            "EXPAND THE TEXT TO 150% LONGER WITH ADDITIONAL DETAIL AND ELABORATION", "structure-cadence"),
    _preset("mixed-cadence", "Mixed cadence",
            "Alternate 5-35-word sentences; no uniform rhythm.", "structure-cadence"),
    _preset("clause-surgery", "Clause surgery",
            "Reorder main/subordinate clauses in 30% of sentences.", "structure-cadence"),
    _preset("front-load-claim", "Front-load claim",
            "Put the main conclusion in sentence 1; support follows.", "structure-cadence"),
    _preset("back-load-claim", "Back-load claim",
            "Delay the conclusion to the final 2-3 sentences.", "structure-cadence"),
    _preset("seam-pivot", "Seam/pivot",
            "Drop smooth connectors once; abrupt turn is fine.", "structure-cadence"),
    # Framing & inference
    _preset("imply-one-step", "Imply one step",
            "Omit an obvious inferential step; leave it implicit.", "framing-inference"),
    _preset("conditional-framing", "Conditional framing",
            'Recast one key sentence as "If/Unless ..., then ...".', "framing-inference"),
    _preset("local-contrast", "Local contrast",
            'Use "but/except/aside" once to mark a boundary, no new facts.', "framing-inference"),
    _preset("scope-check", "Scope check",
            'Replace one absolute with a bounded form ("in cases like these").', "framing-inference"),
    # Diction & tone
    _preset("deflate-jargon", "Deflate jargon",
            'Swap nominalizations for verbs where safe (e.g., "utilization" to "use").', "diction-tone"),
    _preset("kill-stock-transitions", "Kill stock transitions",
            'Delete "Moreover/Furthermore/In conclusion" everywhere.', "diction-tone"),
    _preset("hedge-once", "Hedge once", 'Use exactly one: "probably/roughly/more or less."', "diction-tone"),
    _preset("drop-intensifiers", "Drop intensifiers",
            'Remove "very/clearly/obviously/significantly."', "diction-tone"),
    _preset("low-heat-voice", "Low-heat voice", "Prefer plain verbs; avoid showy synonyms.", "diction-tone"),
    # Concreteness
    _preset("concrete-benchmark", "Concrete benchmark",
            'Replace one vague scale with a testable one (e.g., "enough to X").', "concreteness"),
    _preset("swap-generic-example", "Swap generic example",
            "If the source has an example, make it slightly more specific; else skip.", "concreteness"),
    _preset("metric-nudge", "Metric nudge",
            'Replace "more/better" with a minimal, source-safe comparator ("more than last case").',
            "concreteness"),
    # Asymmetry & focus
    _preset("cull-repeats", "Cull repeats",
            "Delete duplicated sentences/ideas; keep the strongest instance.", "asymmetry"),
    # Formatting & output hygiene
    _preset("no-lists", "No lists", "Force continuous prose; remove bullets/numbering.", "formatting"),
    _preset("no-meta", "No meta", 'No prefaces, apologies, or "as requested" scaffolding.', "formatting"),
    _preset("exact-nouns", "Exact nouns",
            "Replace vague pronouns where antecedent is ambiguous.", "formatting"),
    _preset("quote-once", "Quote once",
            "If the source contains a strong phrase, quote it once; else skip.", "formatting"),
    # Safety
    _preset("claim-lock", "Claim lock",
            "Do not add examples, scenarios, or data not present in the source.", "safety"),
    _preset("entity-lock", "Entity lock",
            "Keep names, counts, and attributions exactly as given.", "safety"),
    # Combos
    _preset("lean-sharp", "Lean & Sharp",
            "Compression-medium + mixed cadence + imply one step + kill stock transitions.", "combo"),
    _preset("analytic", "Analytic",
            "Clause surgery + front-load claim + scope check + exact nouns + no lists.", "combo"),
]

PRESETS_BY_ID = {preset.id: preset for preset in INSTRUCTION_PRESETS}
DEFAULT_PRESET_IDS = [preset.id for preset in INSTRUCTION_PRESETS if preset.is_default]


def get_preset(preset_id: str) -> InstructionPreset:
    preset = PRESETS_BY_ID.get(preset_id)
    if preset is None:
        raise UnknownPreset(preset_id)
    return preset


def resolve(preset_id: str) -> str:
    """Return the instruction text for ``preset_id``."""
    return get_preset(preset_id).instruction


def validate_presets(preset_ids: Iterable[str]) -> None:
    for preset_id in preset_ids:
        get_preset(preset_id)


def build_instructions(preset_ids: Iterable[str], custom_instructions: Optional[str] = None) -> str:
    parts = [resolve(preset_id) for preset_id in preset_ids]
    if custom_instructions and custom_instructions.strip():
        parts.append(custom_instructions.strip())
    return "\n\n".join(parts)


def list_presets(category: Optional[str] = None) -> List[InstructionPreset]:
    if category is None:
        return list(INSTRUCTION_PRESETS)
    return [preset for preset in INSTRUCTION_PRESETS if preset.category == category]
