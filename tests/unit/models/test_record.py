"""Unit tests for the Record model."""

import pydantic
import pytest

from onchain.logs.models import Record

RPC_LOG = {
    "address": "0xfeec00000000000000000000000000000000beef",
    "topics": ["0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"],
    "data": "0x",
    "blockNumber": "0x1b4",
    "transactionHash": "0xabc123",
    "transactionIndex": "0x0",
    "blockHash": "0xdef456",
    "logIndex": "0x2",
    "removed": False,
}


class TestRecord:
    """Test Record construction and identity."""

    def test_from_rpc_log_parses_hex_quantities(self):
        """Test eth_getLogs entry parsing."""
        record = Record.from_rpc_log(RPC_LOG)

        assert record.transaction_id == "0xabc123"
        assert record.sequence_index == 2
        assert record.block_number == 436
        assert record.payload == RPC_LOG
        assert record.timestamp is None

    def test_identity(self):
        record = Record(transaction_id="0xaa", sequence_index=3, block_number=10)
        assert record.identity == ("0xaa", 3)

    def test_decimal_strings_accepted(self):
        record = Record(transaction_id="0xaa", sequence_index="7", block_number="100")
        assert (record.sequence_index, record.block_number) == (7, 100)

    @pytest.mark.parametrize(
        "fields",
        [
            {"transaction_id": "", "sequence_index": 0, "block_number": 1},
            {"transaction_id": "0xaa", "sequence_index": -1, "block_number": 1},
            {"transaction_id": "0xaa", "sequence_index": 0, "block_number": "0xzz"},
            {"transaction_id": "0xaa", "sequence_index": True, "block_number": 1},
        ],
    )
    def test_invalid_fields_rejected(self, fields):
        with pytest.raises(pydantic.ValidationError):
            Record(**fields)

    def test_missing_field_rejected(self):
        """Test that an entry without logIndex cannot become a record."""
        entry = {k: v for k, v in RPC_LOG.items() if k != "logIndex"}
        with pytest.raises(KeyError):
            Record.from_rpc_log(entry)

    def test_frozen(self):
        record = Record(transaction_id="0xaa", sequence_index=0, block_number=1)
        with pytest.raises(pydantic.ValidationError):
            record.block_number = 2
