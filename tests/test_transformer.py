"""
Tests for building contract schemas from EVM ABIs and Stellar specs.
"""

import pytest

from callforge.models.schema import Ecosystem
from callforge.resolver.transformer import (
    StellarSpecError,
    abi_to_schema,
    evm_function_id,
    stellar_spec_to_schema,
)


@pytest.fixture
def stellar_spec():
    return {
        "name": "Vault",
        "functions": [
            {
                "name": "deposit",
                "read_only": False,
                "doc": "Deposit funds",
                "inputs": [
                    {"name": "from", "type": "Address"},
                    {"name": "range", "type": "Range"},
                    {"name": "limits", "type": "Map<ScSymbol, Range>"},
                ],
            },
            {
                "name": "status",
                "read_only": True,
                "inputs": [],
                "outputs": [{"type": "Option<Status>"}],
            },
        ],
        "types": {
            "Range": {
                "kind": "struct",
                "fields": [{"name": "min", "type": "U32"}, {"name": "max", "type": "U32"}],
            },
            "Status": {
                "kind": "enum",
                "variants": [{"name": "Open", "type": "void"}, {"name": "Closed", "type": "void"}],
            },
        },
    }


# ==================== EVM ====================


class TestAbiToSchema:
    """Tests for ABI transformation."""

    def test_functions_and_events(self, erc20_abi):
        schema = abi_to_schema(erc20_abi, address="0x" + "ab" * 20, name="Token")

        assert schema.ecosystem == Ecosystem.EVM
        assert schema.name == "Token"
        assert [f.id for f in schema.functions] == ["transfer_address_uint256", "balanceOf_address", "name_"]
        assert [e.name for e in schema.events] == ["Transfer"]

    def test_display_names(self, erc20_abi):
        schema = abi_to_schema(erc20_abi)

        assert schema.get_function("balanceOf").display_name == "Balance Of"
        assert schema.get_function("transfer").inputs[1].display_name == "Amount"

    def test_modifies_state(self, erc20_abi):
        schema = abi_to_schema(erc20_abi)

        assert schema.get_function("transfer").modifies_state is True
        assert schema.get_function("balanceOf").modifies_state is False

    def test_legacy_constant_flag(self):
        abi = [
            {"type": "function", "name": "total", "constant": True, "inputs": [], "outputs": [{"type": "uint256"}]},
            {"type": "function", "name": "buy", "payable": True, "inputs": []},
        ]

        schema = abi_to_schema(abi)

        assert schema.get_function("total").modifies_state is False
        assert schema.get_function("total").state_mutability == "view"
        assert schema.get_function("buy").is_payable is True

    def test_overloads_have_distinct_ids(self):
        abi = [
            {"type": "function", "name": "safeTransferFrom", "inputs": [{"type": "address"}, {"type": "address"}, {"type": "uint256"}]},
            {
                "type": "function",
                "name": "safeTransferFrom",
                "inputs": [{"type": "address"}, {"type": "address"}, {"type": "uint256"}, {"type": "bytes"}],
            },
        ]

        schema = abi_to_schema(abi)

        assert len({f.id for f in schema.functions}) == 2
        assert schema.get_function("safeTransferFrom") is None
        assert schema.get_function("safeTransferFrom_address_address_uint256_bytes") is not None

    def test_skips_non_callable_items(self, uups_proxy_abi):
        schema = abi_to_schema(uups_proxy_abi)

        assert schema.functions == []
        assert [e.name for e in schema.events] == ["Upgraded"]

    def test_tuple_components(self):
        abi = [
            {
                "type": "function",
                "name": "setRange",
                "inputs": [
                    {"name": "range", "type": "tuple", "components": [{"name": "min", "type": "uint256"}]}
                ],
            }
        ]

        fn = abi_to_schema(abi).functions[0]

        assert fn.id == "setRange_tuple"
        assert fn.inputs[0].components[0].name == "min"

    def test_function_id(self):
        assert evm_function_id("transfer", [{"type": "address"}, {"type": "uint256"}]) == "transfer_address_uint256"
        assert evm_function_id("pause", []) == "pause_"


# ==================== Stellar ====================


class TestStellarSpecToSchema:
    """Tests for manual Stellar spec transformation."""

    def test_functions(self, stellar_spec):
        schema = stellar_spec_to_schema(stellar_spec, address="C" + "B" * 55)

        assert schema.ecosystem == Ecosystem.STELLAR
        assert schema.name == "Vault"
        assert [f.name for f in schema.functions] == ["deposit", "status"]
        assert schema.functions[0].description == "Deposit funds"

    def test_read_only(self, stellar_spec):
        schema = stellar_spec_to_schema(stellar_spec)

        assert schema.get_function("status").modifies_state is False
        assert schema.get_function("status").state_mutability == "view"
        assert schema.get_function("deposit").modifies_state is True

    def test_function_id(self, stellar_spec):
        schema = stellar_spec_to_schema(stellar_spec)

        assert schema.functions[0].id == "deposit_Address_Range_Map<ScSymbol, Range>"
        assert schema.functions[1].id == "status_"

    def test_struct_resolved(self, stellar_spec):
        deposit = stellar_spec_to_schema(stellar_spec).get_function("deposit")

        assert [c.name for c in deposit.inputs[1].components] == ["min", "max"]

    def test_map_components(self, stellar_spec):
        limits = stellar_spec_to_schema(stellar_spec).get_function("deposit").inputs[2]

        key, value = limits.components
        assert key.name == "key"
        assert value.type == "Range"
        assert [c.name for c in value.components] == ["min", "max"]

    def test_option_enum_variants(self, stellar_spec):
        output = stellar_spec_to_schema(stellar_spec).get_function("status").outputs[0]

        assert output.type == "Option<Status>"
        assert [v["name"] for v in output.enum_variants] == ["Open", "Closed"]

    def test_no_functions(self):
        with pytest.raises(StellarSpecError):
            stellar_spec_to_schema({"name": "Empty", "functions": []})

        with pytest.raises(StellarSpecError):
            stellar_spec_to_schema({"name": "Empty"})

    def test_unknown_kind(self):
        spec = {
            "functions": [{"name": "f", "inputs": [{"name": "x", "type": "Weird"}]}],
            "types": {"Weird": {"kind": "union"}},
        }

        with pytest.raises(StellarSpecError, match="unknown kind"):
            stellar_spec_to_schema(spec)

    def test_self_referencing_type_stops(self):
        spec = {
            "functions": [{"name": "f", "inputs": [{"name": "node", "type": "Node"}]}],
            "types": {"Node": {"kind": "struct", "fields": [{"name": "next", "type": "Option<Node>"}]}},
        }

        schema = stellar_spec_to_schema(spec)

        assert schema.functions[0].inputs[0].components[0].name == "next"

    def test_enum_payload_types_resolved(self, shapes_schema):
        shape = shapes_schema.get_function("draw").inputs[0]
        variants = {v["name"]: v for v in shape.enum_variants}

        (point,) = variants["At"]["payload_parameters"]
        assert point.type == "Point"
        assert [c.name for c in point.components] == ["x", "y"]
        (color,) = variants["Paint"]["payload_parameters"]
        assert [v["name"] for v in color.enum_variants] == ["Red", "Green"]
        assert "payload_parameters" not in variants["Empty"]

    def test_tuple_members_resolved(self, shapes_schema):
        pair = shapes_schema.get_function("draw").inputs[1]

        first, second = pair.components
        assert first.type == "Point"
        assert [c.name for c in first.components] == ["x", "y"]
        assert second.type == "U32"
        assert second.components is None
