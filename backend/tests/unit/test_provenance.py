"""
Unit tests for image provenance classification.
"""

import pytest

from updates.provenance import HeuristicClassifier, PatternClassifier, get_classifier


@pytest.mark.unit
class TestHeuristicClassifier:

    @pytest.mark.parametrize('reference', [
        'myproject_web',
        'myproject-web:latest',
        'compose_worker_1',
    ])
    def test_compose_style_names_are_local(self, reference):
        assert HeuristicClassifier().is_locally_built(reference) is True

    @pytest.mark.parametrize('reference', [
        'nginx',
        'nginx:latest',
        'library/redis:7',
        'ghcr.io/acme/api-server:1.2',
        'registry.example.com:5000/team/my_app',
    ])
    def test_registry_references_are_pulled(self, reference):
        assert HeuristicClassifier().is_locally_built(reference) is False

    def test_classification_is_pure(self):
        classifier = HeuristicClassifier()
        results = {classifier.is_locally_built('my-app') for _ in range(3)}

        assert results == {True}


@pytest.mark.unit
class TestPatternClassifier:

    def test_pattern_overrides_heuristic(self):
        classifier = get_classifier(r'^local/')

        assert isinstance(classifier, PatternClassifier)
        assert classifier.is_locally_built('local/tool:dev') is True
        # The heuristic would call this one local
        assert classifier.is_locally_built('my-app') is False

    def test_no_pattern_uses_heuristic(self):
        assert isinstance(get_classifier(None), HeuristicClassifier)
        assert isinstance(get_classifier(''), HeuristicClassifier)
