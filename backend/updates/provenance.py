"""
Image provenance classification.

Decides whether an image reference is locally built (never pulled) or comes
from a registry. The default heuristic treats a reference with no "/" that
contains "_" or "-" as locally built, which catches compose-generated image
names like "myproject_web". It misclassifies hand-named local images with a
slash and registry images with underscores; LOCAL_IMAGE_PATTERN overrides it
per deployment.
"""

import logging
import re
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

_DEFAULT_LOCAL_RE = re.compile(r'^[^/]*[_-][^/]*$')


class ProvenanceClassifier(Protocol):
    def is_locally_built(self, reference: str) -> bool:
        ...


class HeuristicClassifier:
    """Default classifier (no registry path and a compose-style name)"""

    def is_locally_built(self, reference: str) -> bool:
        return bool(_DEFAULT_LOCAL_RE.match(reference or ''))


class PatternClassifier:
    """Locally built iff the reference matches a configured regular expression"""

    def __init__(self, pattern: str):
        self.pattern = re.compile(pattern)

    def is_locally_built(self, reference: str) -> bool:
        return bool(self.pattern.search(reference or ''))


def get_classifier(pattern: Optional[str] = None) -> ProvenanceClassifier:
    """Classifier for this deployment (LOCAL_IMAGE_PATTERN when set)"""
    if pattern:
        logger.info(f"Using LOCAL_IMAGE_PATTERN for image provenance: {pattern}")
        return PatternClassifier(pattern)
    return HeuristicClassifier()
