#!/usr/bin/env python3
"""
Bump Texture Packer - Main Entry Point
Builds bump and bump# textures from a normal map (plus optional gloss and height maps).
"""

import sys
from pathlib import Path

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from stalker_bump.cli import main

if __name__ == "__main__":
    sys.exit(main())
