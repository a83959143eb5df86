"""
Testers
=======

Self-contained test suites. Every ``*_testers.py`` module can be run as a
script (``python -m a2c_rl.common.testers.a2c_testers [filter]``) and is also
collected by pytest.
"""
