"""
SLICEPOOL Configuration
Pooled mining-reward accounting on a halving issuance schedule.
"""

from typing import Dict, Any
import os
import logging

# ============================================================================
# CORE SPECIFICATIONS
# ============================================================================

PROJECT_NAME = "SLICEPOOL"
COIN_TICKER = "VBTC"
COIN_UNIT = 100_000_000  # Satoshis per coin (8 decimal places)

# ============================================================================
# ISSUANCE SCHEDULE
# ============================================================================

# Subsidy per block: 25 coins (Bitcoin-style halving)
INITIAL_BLOCK_REWARD = 25 * COIN_UNIT

# Halving every 4,200,000 blocks
HALVING_INTERVAL = 4_200_000

# Reward milestones:
# Blocks 0 - 4,199,999:          25 coins
# Blocks 4,200,000 - 8,399,999:  12.5 coins
# Blocks 8,400,000 - 12,599,999: 6.25 coins
# And so on until the subsidy shifts down to zero.

# Minimum block reward (0 = issuance ends when the shift reaches zero)
MIN_BLOCK_REWARD = 0


# ============================================================================
# POOL PARAMETERS
# ============================================================================

# Slices minted per unit of mining power. One token collateralizes one slice,
# so a pool of power P stakes P * SLICES_PER_POWER token units.
SLICES_PER_POWER = 10_000

# Fixed-point scale of the per-slice reward accumulator
REWARD_PRECISION = 10 ** 18

# Power mined outside the engine that still takes a share of the subsidy
RESERVED_POWER = 0

# Account that holds stakes and the title of crowdfunded pools
ENGINE_ACCOUNT = "slicepool"

# ============================================================================
# REMOTE SUBSIDY SOURCE
# ============================================================================

SEED_URL = "http://127.0.0.1:7340"
REQUEST_TIMEOUT = 10  # seconds

# ============================================================================
# FILE PATHS
# ============================================================================

def get_data_dir(testnet: bool = False) -> str:
    """Get default data directory."""
    import platform

    if platform.system() == 'Windows':
        base = os.environ.get('APPDATA', os.path.expanduser('~'))
        dir_name = 'SLICEPOOL' if not testnet else 'SLICEPOOL/testnet'
    elif platform.system() == 'Darwin':
        base = os.path.expanduser('~/Library/Application Support')
        dir_name = 'SLICEPOOL' if not testnet else 'SLICEPOOL/testnet'
    else:
        base = os.path.expanduser('~')
        dir_name = '.slicepool' if not testnet else '.slicepool/testnet'

    return os.path.join(base, dir_name)


def get_config_file(testnet: bool = False) -> str:
    """Get config file path."""
    return os.path.join(get_data_dir(testnet), CONFIG_FILENAME)


# Default filenames
STATE_FILENAME = "ledger.json"
CONFIG_FILENAME = "slicepool.conf"

# Keys accepted in slicepool.conf and the type each one is parsed as
SETTING_TYPES = {
    'slicesperpower': ('SLICES_PER_POWER', int),
    'rewardprecision': ('REWARD_PRECISION', int),
    'reservedpower': ('RESERVED_POWER', int),
    'engineaccount': ('ENGINE_ACCOUNT', str),
    'initialblockreward': ('INITIAL_BLOCK_REWARD', int),
    'halvinginterval': ('HALVING_INTERVAL', int),
    'minblockreward': ('MIN_BLOCK_REWARD', int),
    'seedurl': ('SEED_URL', str),
    'requesttimeout': ('REQUEST_TIMEOUT', int),
    'loglevel': ('LOG_LEVEL', str),
    'logfile': ('LOG_FILE', str),
}


def load_settings(config_file: str = None) -> Dict[str, Any]:
    """
    Load settings from a key=value config file.

    Unknown keys are ignored; a missing file yields the defaults.

    Args:
        config_file: Path to config file

    Returns:
        Dictionary of setting name -> value
    """
    if config_file is None:
        config_file = get_config_file()

    settings = {name: globals()[name] for name, _ in SETTING_TYPES.values()}

    try:
        with open(config_file, 'r') as f:
            for line in f:
                line = line.strip()
                if '=' not in line or line.startswith('#'):
                    continue
                key, value = line.split('=', 1)
                key = key.strip().lower()
                if key not in SETTING_TYPES:
                    continue
                name, kind = SETTING_TYPES[key]
                try:
                    settings[name] = kind(value.strip())
                except ValueError:
                    raise ValueError(f"Invalid value for {key}: {value.strip()}")
    except FileNotFoundError:
        pass

    return settings


# ============================================================================
# LOGGING
# ============================================================================

LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = ""  # empty = log to stderr only


def setup_logging(level: str = None, log_file: str = None):
    """Configure root logging from the settings above."""
    handlers = [logging.StreamHandler()]
    log_file = LOG_FILE if log_file is None else log_file
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )


# ============================================================================
# VERSION INFO
# ============================================================================

VERSION = "1.0.0"
VERSION_MAJOR = 1
VERSION_MINOR = 0
VERSION_PATCH = 0

CLIENT_NAME = f"{PROJECT_NAME} Engine"
CLIENT_VERSION = f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_PATCH}"
