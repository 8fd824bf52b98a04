"""
Artifact Sieve - Rule-Based Scoring

Deterministic, LLM-free pre-filter. ``score()`` reads nothing but the
artifact passed in: no clock, no I/O, no module state that changes.

Scale is 0.0-1.0; artifacts at or above SIEVE_THRESHOLD become candidates.

Rule families are additive. Each family is capped at its own maximum, its
penalties are subtracted, and the sum is clamped to [0, 1]:

    noise        title matches a noise pattern -> 0, nothing else runs
    vocabulary   architectural keywords, decision labels, detail, causality
    change_size  file/line footprint; penalized again when excessive
    diff_content config/schema/migration/API hits; test-heavy and
                 lockfile-only diffs penalized
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Tuple

from archlog.models.records import Artifact

logger = logging.getLogger(__name__)

SIEVE_THRESHOLD = 0.4
MAX_SCORE = 1.0

# Title patterns for changes that never carry a decision
NOISE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^bump\b",
        r"^(chore|build|ci)\(deps(-dev)?\)",
        r"^update dependency\b",
        r"^(deps|dependencies)\b",
        r"\bdependabot\b",
        r"\brenovate\b",
        r"^\[bot\]",
        r"^\[(auto|automated|skip ci)\]",
        r"^auto(mated)?[- ]?(merge|update|format)",
        r"^(style|format|lint)(\(.*\))?:",
        r"^(run |apply )?(prettier|black|eslint|rustfmt|gofmt|isort)\b",
        r"^(fix|apply) (formatting|lint(ing)?)\b",
        r"^format(ting)?\b",
        r"^ci(\(.*\))?:",
        r"^(update|fix|tweak) (ci|github actions?|workflows?)\b",
        r"^merge (branch|remote-tracking branch|pull request)\b",
        r"^fix(ed)? typos?\b",
        r"^(update|fix) readme\b",
        r"^release v?\d+\.\d+",
        r"^v?\d+\.\d+\.\d+$",
    )
]

ARCHITECTURE_VOCABULARY = [
    "architecture",
    "architectural",
    "design",
    "decide",
    "decision",
    "chose",
    "choose",
    "pattern",
    "approach",
    "trade-off",
    "tradeoff",
    "migrat",
    "refactor",
    "breaking change",
    "deprecat",
    "replace",
    "switch to",
    "adopt",
    "introduce",
    "standardiz",
    "framework",
    "api",
    "schema",
    "database",
    "authentication",
    "authorization",
    "security",
    "performance",
    "caching",
    "cache",
    "infrastructure",
    "deployment",
    "microservice",
    "monolith",
    "event-driven",
    "queue",
    "protocol",
    "interface",
]

# Stems match any word they start; whole words also match their common inflections
_VOCABULARY_STEMS = {"migrat", "deprecat", "standardiz"}


def _keyword_pattern(keyword: str) -> re.Pattern:
    if keyword in _VOCABULARY_STEMS:
        return re.compile(rf"\b{keyword}\w*")
    if keyword.endswith("e"):
        return re.compile(rf"\b{re.escape(keyword[:-1])}(e|es|ed|ing)\b")
    return re.compile(rf"\b{re.escape(keyword)}(s|es|ed|ing)?\b")


VOCABULARY_PATTERNS: Dict[str, re.Pattern] = {
    keyword: _keyword_pattern(keyword) for keyword in ARCHITECTURE_VOCABULARY
}

DECISION_LABELS = [
    "architecture",
    "breaking-change",
    "breaking",
    "rfc",
    "adr",
    "design",
    "infrastructure",
    "security",
    "performance",
    "migration",
    "deprecation",
]

CAUSAL_PATTERN = re.compile(
    r"\b(because|rationale|reason(s|ing)?|why we|trade-?offs?|so that|in order to|motivation)\b",
    re.IGNORECASE,
)

DIFF_CATEGORIES: Dict[str, re.Pattern] = {
    "config": re.compile(
        r"(^|/)(dockerfile|docker-compose[^/]*|[^/]*\.config\.(ts|js|json)|"
        r"[^/]*\.(ya?ml|toml|ini)|\.env[^/]*|helm/|terraform/|[^/]*\.tf)$",
        re.IGNORECASE,
    ),
    "schema": re.compile(
        r"(schema\.(prisma|graphql|sql|json)$|\.proto$|\.avsc$|models?\.py$|\bCREATE TABLE\b)",
        re.IGNORECASE,
    ),
    "migration": re.compile(
        r"(migrations?/|alembic/|\bALTER TABLE\b|\bmigrate\b)", re.IGNORECASE
    ),
    "api": re.compile(
        r"(openapi|swagger|(^|/)api/|routes?/|\.graphql$|@(app|router)\.(get|post|put|delete)|"
        r"\bendpoint\b)",
        re.IGNORECASE,
    ),
}

TEST_FILE_PATTERN = re.compile(
    r"((^|/)tests?/|(^|/)__tests__/|_test\.|\.test\.|\.spec\.|(^|/)test_[^/]*$)",
    re.IGNORECASE,
)
LOCKFILE_PATTERN = re.compile(
    r"(^|/)(package-lock\.json|yarn\.lock|pnpm-lock\.yaml|poetry\.lock|Pipfile\.lock|"
    r"Cargo\.lock|go\.sum|Gemfile\.lock|composer\.lock|uv\.lock)$"
)
DIFF_FILE_HEADER = re.compile(r"^diff --git a/(\S+) b/", re.MULTILINE)

# Family caps
VOCABULARY_CAP = 0.55
CHANGE_SIZE_CAP = 0.25
DIFF_CONTENT_CAP = 0.25

# Thresholds
DETAILED_BODY_CHARS = 400
EXCESSIVE_FILES = 150
EXCESSIVE_LINES = 8000
TEST_HEAVY_RATIO = 0.7


@dataclass
class SieveResult:
    total: float
    passed: bool
    breakdown: Dict[str, float] = field(default_factory=dict)
    signals: List[str] = field(default_factory=list)
    penalties: List[str] = field(default_factory=list)
    reasoning: str = ""

    def to_dict(self) -> Dict:
        return asdict(self)


def _noise_match(title: str) -> str:
    stripped = title.strip()
    for pattern in NOISE_PATTERNS:
        if pattern.search(stripped):
            return pattern.pattern
    return ""


def _touched_paths(artifact: Artifact) -> List[str]:
    if artifact.file_paths:
        return list(artifact.file_paths)
    if artifact.diff:
        return DIFF_FILE_HEADER.findall(artifact.diff)
    return []


def _vocabulary(artifact: Artifact) -> Tuple[float, List[str]]:
    title = artifact.title.lower()
    text = f"{title}\n{(artifact.body or '').lower()}"
    matched = [kw for kw, pattern in VOCABULARY_PATTERNS.items() if pattern.search(text)]
    signals: List[str] = []
    reward = 0.0

    if len(matched) >= 3:
        reward += 0.35
    elif len(matched) == 2:
        reward += 0.25
    elif len(matched) == 1:
        reward += 0.15
    if matched:
        signals.append(f"vocabulary:{len(matched)}({', '.join(matched[:5])})")

    if any(pattern.search(title) for pattern in VOCABULARY_PATTERNS.values()):
        reward += 0.10
        signals.append("vocabulary_in_title")

    labels = [label.lower() for label in artifact.labels]
    decision_labels = sorted({dl for dl in DECISION_LABELS for label in labels if dl in label})
    if decision_labels:
        reward += 0.20
        signals.append(f"decision_labels({', '.join(decision_labels)})")

    body = artifact.body or ""
    if len(body) >= DETAILED_BODY_CHARS:
        reward += 0.05
        signals.append("detailed_body")
    if CAUSAL_PATTERN.search(body):
        reward += 0.10
        signals.append("causal_language")

    return min(reward, VOCABULARY_CAP), signals


def _change_size(artifact: Artifact) -> Tuple[float, float, List[str], List[str]]:
    files = artifact.files_changed
    lines = artifact.lines_changed
    signals: List[str] = []
    penalties: List[str] = []
    reward = 0.0

    if files >= 20:
        reward += 0.20
    elif files >= 10:
        reward += 0.15
    elif files >= 5:
        reward += 0.10
    if files >= 5:
        signals.append(f"files_changed:{files}")
    if lines >= 500:
        reward += 0.05
        signals.append(f"lines_changed:{lines}")

    penalty = 0.0
    if files > EXCESSIVE_FILES or lines > EXCESSIVE_LINES:
        penalty = 0.25
        penalties.append(f"excessive_footprint({files} files, {lines} lines)")

    return min(reward, CHANGE_SIZE_CAP), penalty, signals, penalties


def _diff_content(artifact: Artifact) -> Tuple[float, float, List[str], List[str]]:
    paths = _touched_paths(artifact)
    signals: List[str] = []
    penalties: List[str] = []
    reward = 0.0

    for category, pattern in DIFF_CATEGORIES.items():
        # Path patterns are anchored, match each path on its own
        hit = any(pattern.search(p) for p in paths)
        if not hit and artifact.diff:
            hit = pattern.search(artifact.diff) is not None
        if hit:
            reward += 0.08
            signals.append(f"diff_{category}")

    penalty = 0.0
    if paths:
        lockfiles = [p for p in paths if LOCKFILE_PATTERN.search(p)]
        tests = [p for p in paths if TEST_FILE_PATTERN.search(p)]
        if len(lockfiles) == len(paths):
            penalty += 0.25
            penalties.append("lockfile_only")
        elif len(tests) / len(paths) >= TEST_HEAVY_RATIO:
            penalty += 0.15
            penalties.append(f"test_heavy({len(tests)}/{len(paths)})")

    return min(reward, DIFF_CONTENT_CAP), penalty, signals, penalties


def score(artifact: Artifact) -> SieveResult:
    """
    Score an artifact for architectural significance.

    Args:
        artifact: the artifact to score

    Returns:
        SieveResult with total in [0, 1], per-family breakdown, signal and
        penalty lists and a one-line explanation
    """
    noise = _noise_match(artifact.title)
    if noise:
        return SieveResult(
            total=0.0,
            passed=False,
            breakdown={"noise": 0.0},
            penalties=[f"noise_title({noise})"],
            reasoning=f"Title matches noise pattern {noise!r}; all other rules skipped",
        )

    vocab, vocab_signals = _vocabulary(artifact)
    size, size_penalty, size_signals, size_penalties = _change_size(artifact)
    content, content_penalty, content_signals, content_penalties = _diff_content(artifact)

    breakdown = {
        "vocabulary": round(vocab, 4),
        "change_size": round(size - size_penalty, 4),
        "diff_content": round(content - content_penalty, 4),
    }
    raw = vocab + (size - size_penalty) + (content - content_penalty)
    total = round(min(max(raw, 0.0), MAX_SCORE), 4)
    passed = total >= SIEVE_THRESHOLD

    signals = vocab_signals + size_signals + content_signals
    penalties = size_penalties + content_penalties
    verdict = "passes" if passed else "below"
    reasoning = (
        f"Score {total:.2f} {verdict} threshold {SIEVE_THRESHOLD:.2f} "
        f"(vocabulary {breakdown['vocabulary']:.2f}, change size {breakdown['change_size']:.2f}, "
        f"diff content {breakdown['diff_content']:.2f})"
    )
    if penalties:
        reasoning += f"; penalties: {', '.join(penalties)}"

    return SieveResult(
        total=total,
        passed=passed,
        breakdown=breakdown,
        signals=signals,
        penalties=penalties,
        reasoning=reasoning,
    )
