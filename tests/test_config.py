"""
Tests for ExpansionConfig.
"""

import pytest

from grouptreelib.aio import FailFastPolicy, SkipBranchPolicy, ThresholdPolicy, expand_group
from grouptreelib.config import (
    DEFAULT_LEVELS_DEEP_TO_GO,
    ExpansionConfig,
    OutputIdentifier,
    TraversalMode,
)


class TestExpansionConfig:

    def test_defaults(self):
        config = ExpansionConfig()
        assert config.mode is TraversalMode.FLAT
        assert config.output_identifier is OutputIdentifier.GUID
        assert config.effective_depth() is None
        assert config.validate() == []

    def test_expanded_is_bounded_by_default(self):
        assert ExpansionConfig.expanded().effective_depth() == DEFAULT_LEVELS_DEEP_TO_GO
        assert ExpansionConfig(mode=TraversalMode.EXPANDED).effective_depth() == 10
        assert ExpansionConfig.expanded(levels_deep_to_go=3).effective_depth() == 3

    def test_flat_can_be_bounded(self):
        assert ExpansionConfig.flat(levels_deep_to_go=4).effective_depth() == 4

    @pytest.mark.parametrize("kwargs,fragment", [
        ({'starting_level': 0}, 'starting_level'),
        ({'levels_deep_to_go': 0}, 'levels_deep_to_go'),
        ({'levels_deep_to_go': 2, 'starting_level': 3}, 'less than starting_level'),
        ({'max_concurrent': 0}, 'max_concurrent'),
        ({'timeout_seconds': 0}, 'timeout_seconds'),
        ({'error_policy': object()}, 'error_policy'),
        ({'mode': 'flat'}, 'mode'),
        ({'output_identifier': 'guid'}, 'output_identifier'),
    ])
    def test_validate(self, kwargs, fragment):
        errors = ExpansionConfig(**kwargs).validate()
        assert any(fragment in e for e in errors)

    def test_error_policy_selection(self):
        assert isinstance(ExpansionConfig().create_error_policy(), SkipBranchPolicy)
        assert isinstance(ExpansionConfig(skip_errors=False).create_error_policy(), FailFastPolicy)
        custom = ThresholdPolicy(max_errors=3)
        assert ExpansionConfig(error_policy=custom).create_error_policy() is custom

    def test_each_policy_is_fresh(self):
        config = ExpansionConfig()
        assert config.create_error_policy() is not config.create_error_policy()

    @pytest.mark.asyncio
    async def test_invalid_config_rejected_by_api(self, scenario_a):
        with pytest.raises(ValueError, match="max_concurrent"):
            await expand_group(scenario_a.build(), 'G1', ExpansionConfig(max_concurrent=0))
