import pytest

from modules.pipeline_tree import PipelineTree
from utils import constants
from utils.exceptions import ConfigurationError

ALL_STAGES = list(constants.STAGE_NAMES)


def _tree(**kwargs):
    params = dict(stage_catalog=ALL_STAGES, model_catalog=["DecisionTree", "RandomForest"],
                  max_depth=3, max_algorithm_repeatability=2, seed=0)
    params.update(kwargs)
    return PipelineTree(**params)


class TestStructure:
    def test_root_children(self):
        tree = _tree()
        elements = [child.element for child in tree.children(tree.root)]
        assert elements == ALL_STAGES + ["model:DecisionTree", "model:RandomForest"]
        assert tree.is_root(tree.root)
        assert tree.node_count() == 1 + len(elements)

    def test_model_nodes_are_leaves(self):
        tree = _tree()
        leaf = tree.find(["model:DecisionTree"])
        assert tree.is_leaf(leaf)
        assert tree.children(leaf) == []

    def test_depth_limit_leaves_only_models(self):
        tree = _tree(max_depth=1)
        node = tree.find(["PCA"])
        assert [c.element for c in tree.children(node)] == ["model:DecisionTree", "model:RandomForest"]

    def test_zero_depth_is_model_only(self):
        tree = _tree(max_depth=0)
        assert all(child.is_model for child in tree.children(tree.root))

    def test_feature_selection_excludes_pca(self):
        tree = _tree()
        after_pca = [c.element for c in tree.children(tree.find(["PCA"]))]
        after_fs = [c.element for c in tree.children(tree.find(["FeatureSelection"]))]
        assert "FeatureSelection" not in after_pca
        assert "PCA" not in after_fs

    def test_oversampling_never_follows_itself(self):
        tree = _tree()
        after = [c.element for c in tree.children(tree.find(["Oversampling"]))]
        assert "Oversampling" not in after
        assert tree.find(["Oversampling", "Undersampling", "Oversampling"]) is not None

    def test_repeatability_limit(self):
        tree = _tree(max_depth=4)
        node = tree.find(["Undersampling", "Undersampling"])
        assert node is not None
        assert "Undersampling" not in [c.element for c in tree.children(node)]

    def test_non_repeatable_stage_appears_once(self):
        tree = _tree()
        assert "PCA" not in [c.element for c in tree.children(tree.find(["PCA"]))]

    def test_siblings(self):
        tree = _tree()
        node = tree.find(["PCA"])
        siblings = tree.siblings(node)
        assert node not in siblings
        assert len(siblings) == len(tree.children(tree.root)) - 1
        assert tree.siblings(tree.root) == []

    def test_valid_paths(self):
        tree = _tree()
        assert tree.is_valid_path(["PCA", "Undersampling", "model:RandomForest"])
        assert not tree.is_valid_path(["PCA", "Undersampling"])
        assert not tree.is_valid_path(["PCA", "PCA", "model:RandomForest"])
        assert not tree.is_valid_path(["model:SVM"])

    def test_invalid_configuration(self):
        with pytest.raises(ConfigurationError):
            _tree(model_catalog=[])
        with pytest.raises(ConfigurationError):
            _tree(max_depth=-1)
        with pytest.raises(ConfigurationError):
            _tree(temperature=0)


class TestSampling:
    def test_random_paths_are_valid(self):
        tree = _tree()
        for _ in range(50):
            candidate = tree.random_path()
            assert tree.is_valid_path(candidate.path)
            assert len(candidate.stages) <= 3
            assert candidate.model.name in ("DecisionTree", "RandomForest")

    def test_same_seed_same_paths(self):
        first, second = _tree(seed=5), _tree(seed=5)
        assert [first.random_path().path for _ in range(10)] == [second.random_path().path for _ in range(10)]

    def test_candidate_for_applies_configured_params(self):
        tree = _tree(stage_params={"PCA": {"n_components": 2}}, model_params={"RandomForest": {"n_trees": 10}},
                     optimize_models=True)
        candidate = tree.candidate_for(["PCA", "model:RandomForest"])
        assert candidate.stages[0].params == {"n_components": 2}
        assert candidate.model.params == {"n_trees": 10}
        assert candidate.model.optimize

    def test_candidate_for_rejects_partial_path(self):
        with pytest.raises(ConfigurationError, match="Not a complete path"):
            _tree().candidate_for(["PCA"])

    def test_record_fitness_updates_path(self):
        tree = _tree()
        candidate = tree.candidate_for(["PCA", "model:DecisionTree"])
        tree.record_fitness(candidate, 0.8)
        tree.record_fitness(candidate, 0.4)

        assert tree.root.visits == 2
        assert tree.find(["PCA"]).mean_fitness == pytest.approx(0.6)
        assert tree.find(["PCA", "model:DecisionTree"]).visits == 2

    def test_unevaluated_candidate_is_ignored(self):
        tree = _tree()
        tree.record_fitness(tree.candidate_for(["model:DecisionTree"]))
        assert tree.root.visits == 0

    def test_low_temperature_follows_best_branch(self):
        tree = _tree(max_depth=0, temperature=0.01)
        tree.record_fitness(tree.candidate_for(["model:DecisionTree"]), 0.2)
        tree.record_fitness(tree.candidate_for(["model:RandomForest"]), 0.9)
        picks = [tree.random_path().model.name for _ in range(20)]
        assert picks == ["RandomForest"] * 20

    def test_low_temperature_minimizing(self):
        tree = _tree(max_depth=0, temperature=0.01, minimize=True)
        tree.record_fitness(tree.candidate_for(["model:DecisionTree"]), 0.2)
        tree.record_fitness(tree.candidate_for(["model:RandomForest"]), 0.9)
        assert {tree.random_path().model.name for _ in range(20)} == {"DecisionTree"}
