"""
TIERFLOW identity constants shared by the CLI and event log.
"""

__codename__ = "TIERFLOW"
__tagline__ = "Plan first. Execute on approval."
__version__ = "0.4.0"

BANNER = r"""
 _____ ___ _____ ____  _____ _     _____        __
|_   _|_ _| ____|  _ \|  ___| |   / _ \ \      / /
  | |  | ||  _| | |_) | |_  | |  | | | \ \ /\ / /
  | |  | || |___|  _ <|  _| | |__| |_| |\ V  V /
  |_| |___|_____|_| \_\_|   |_____\___/  \_/\_/
"""
