"""
Shotgun Metagenomics Analysis Workflow
----------------------------------------------------------------------------------------
Entry point: `python src/run.py --config references/config.yaml`
"""
# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import sys
from pathlib import Path

# Local Imports
parent_dir = Path(__file__).resolve().parent
if str(parent_dir) not in sys.path:
    sys.path.append(str(parent_dir))

from workflow_metagenomics.workflow import main

# ==================================================================================== #

if __name__ == "__main__":
    sys.exit(main())
