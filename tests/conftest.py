"""Pytest configuration for the intl_modules test suite.

Hypothesis profiles:
- dev: local development, 300 examples
- ci: CI runs, 50 examples (selected automatically when CI=true)

Override manually: HYPOTHESIS_PROFILE=dev pytest tests/
"""

import os

from hypothesis import settings

settings.register_profile("dev", max_examples=300, deadline=None)
settings.register_profile("ci", max_examples=50, deadline=None)

if os.environ.get("HYPOTHESIS_PROFILE"):
    settings.load_profile(os.environ["HYPOTHESIS_PROFILE"])
elif os.environ.get("CI", "").lower() == "true":
    settings.load_profile("ci")
else:
    settings.load_profile("dev")
