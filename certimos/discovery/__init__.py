from certimos.discovery.aggregator import MultiContractAggregator
from certimos.discovery.metadata import MetadataResolver, decode_data_uri, encode_data_uri
from certimos.discovery.records import (
    AggregateScanResult,
    ContractScanStatus,
    ScanResult,
    TokenRecord,
    Valuation,
    ValueBreakdown,
)
from certimos.discovery.scanner import OwnershipScanner, ScanConfig
from certimos.discovery.valuation import valuate

__all__ = [
    "AggregateScanResult",
    "ContractScanStatus",
    "MetadataResolver",
    "MultiContractAggregator",
    "OwnershipScanner",
    "ScanConfig",
    "ScanResult",
    "TokenRecord",
    "Valuation",
    "ValueBreakdown",
    "decode_data_uri",
    "encode_data_uri",
    "valuate",
]
