"""Shared fixtures."""

import pytest

from fakes import CLEAN_COMPONENT, HOOK_COMPONENT


@pytest.fixture
def hook_component():
    return HOOK_COMPONENT


@pytest.fixture
def clean_component():
    return CLEAN_COMPONENT
