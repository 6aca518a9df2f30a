"""Step definitions package for BDD tests.

Each ``*_steps.py`` module is loaded as a pytest plugin by the root
conftest.py, so pytest-bdd can match its steps from any feature file.
"""
