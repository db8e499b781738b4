from certimos.chain.contract import (
    ContractReader,
    ContractWriter,
    NativeBalance,
    TransactionReceipt,
    Web3ContractReader,
    Web3ContractWriter,
    get_native_balance,
    web3_reader_factory,
    web3_writer_factory,
)

__all__ = [
    "ContractReader",
    "ContractWriter",
    "NativeBalance",
    "TransactionReceipt",
    "Web3ContractReader",
    "Web3ContractWriter",
    "get_native_balance",
    "web3_reader_factory",
    "web3_writer_factory",
]
