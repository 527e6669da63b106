from .energy_tools import EnergyTools
from .met_data import CONTINUOUS_METS, DEFAULT_METS, MET_TABLE

__all__ = ["EnergyTools", "MET_TABLE", "DEFAULT_METS", "CONTINUOUS_METS"]
