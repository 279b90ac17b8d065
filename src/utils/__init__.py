"""
Utility modules for the brokerage service
"""
from .config_loader import BrokerageConfig, load_brokerage_config
from .money import round_money, to_decimal

__all__ = [
    'BrokerageConfig',
    'load_brokerage_config',
    'round_money',
    'to_decimal',
]
