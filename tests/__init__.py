#!/usr/bin/env python
from hypothesis import settings, Verbosity

settings.register_profile("dev", max_examples=50, verbosity=Verbosity.normal)
settings.load_profile("dev")
