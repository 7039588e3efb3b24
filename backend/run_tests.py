#!/usr/bin/env python
"""Run from backend/: python run_tests.py [pytest args]"""
import sys
import subprocess

if __name__ == "__main__":
    sys.exit(subprocess.call([sys.executable, "-m", "pytest", "tests/", "-v", "--tb=short", *sys.argv[1:]]))
