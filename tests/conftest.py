import os
import sys

TESTS_DIR = os.path.dirname(__file__)

# backend/ and scripts/ are flat module directories, not packages.
sys.path.insert(0, os.path.join(TESTS_DIR, "..", "backend"))
sys.path.insert(0, os.path.join(TESTS_DIR, "..", "scripts"))
