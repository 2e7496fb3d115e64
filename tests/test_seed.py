import hashlib
import re
import unittest
from datetime import datetime, timezone

from fairdraw.lottery import (
    LotteryConfig,
    RoundingMode,
    SeedMaterial,
    calc_guarantee_quota,
    canonical_seed_parts,
    derive_seed_hash,
    generate_run_id,
    generate_run_salt,
)


def make_material(**overrides) -> SeedMaterial:
    values = dict(
        document_hash="ab" * 32,
        config=LotteryConfig(capacity=20, rounding_mode="floor", target_group=" 아라동 "),
        btc_value="64123.45",
        nist_value="1234567890123",
        run_id="run-20250101T000000Z-abc123",
        run_salt_hex="cd" * 32,
    )
    values.update(overrides)
    return SeedMaterial(**values)


class TestCanonicalSeedParts(unittest.TestCase):
    def test_exact_field_list_and_order(self):
        self.assertEqual(
            canonical_seed_parts(make_material()),
            [
                "excel_hash=" + "ab" * 32,
                "selected_dong=아라동",
                "capacity=20",
                "rounding_mode=floor",
                "btc=64123.45",
                "nist=1234567890123",
                "run_id=run-20250101T000000Z-abc123",
                "run_salt=" + "cd" * 32,
            ],
        )

    def test_seed_hash_is_sha256_of_newline_joined_parts(self):
        material = make_material()
        expected = hashlib.sha256(
            "\n".join(canonical_seed_parts(material)).encode("utf-8")
        ).hexdigest()
        self.assertEqual(derive_seed_hash(material), expected)
        self.assertRegex(derive_seed_hash(material), r"^[0-9a-f]{64}$")

    def test_seed_is_deterministic(self):
        self.assertEqual(derive_seed_hash(make_material()), derive_seed_hash(make_material()))

    def test_any_field_change_changes_seed(self):
        base = derive_seed_hash(make_material())
        variants = [
            make_material(document_hash="00" * 32),
            make_material(btc_value="64123.46"),
            make_material(nist_value="1"),
            make_material(run_id="run-other"),
            make_material(run_salt_hex="ee" * 32),
            make_material(
                config=LotteryConfig(capacity=21, rounding_mode="floor", target_group="아라동")
            ),
            make_material(
                config=LotteryConfig(capacity=20, rounding_mode="ceil", target_group="아라동")
            ),
        ]
        for material in variants:
            self.assertNotEqual(derive_seed_hash(material), base)

    def test_surrounding_whitespace_in_target_group_is_ignored(self):
        trimmed = make_material(
            config=LotteryConfig(capacity=20, rounding_mode="floor", target_group="아라동")
        )
        self.assertEqual(derive_seed_hash(trimmed), derive_seed_hash(make_material()))


class TestGuaranteeQuota(unittest.TestCase):
    def test_documented_values(self):
        self.assertEqual(calc_guarantee_quota(20, "floor"), 10)
        self.assertEqual(calc_guarantee_quota(21, "floor"), 10)
        self.assertEqual(calc_guarantee_quota(21, "ceil"), 11)
        self.assertEqual(calc_guarantee_quota(21, "round"), 11)
        self.assertEqual(calc_guarantee_quota(20, RoundingMode.ROUND), 10)

    def test_capacity_one(self):
        self.assertEqual(calc_guarantee_quota(1, "floor"), 0)
        self.assertEqual(calc_guarantee_quota(1, "ceil"), 1)
        self.assertEqual(calc_guarantee_quota(1, "round"), 1)

    def test_invalid_mode_rejected(self):
        with self.assertRaises(ValueError):
            calc_guarantee_quota(10, "banker")


class TestLotteryConfig(unittest.TestCase):
    def test_rejects_non_positive_capacity(self):
        with self.assertRaises(ValueError):
            LotteryConfig(capacity=0, rounding_mode="floor", target_group="x")

    def test_rejects_non_integer_capacity(self):
        with self.assertRaises(TypeError):
            LotteryConfig(capacity=2.5, rounding_mode="floor", target_group="x")

    def test_coerces_rounding_mode(self):
        config = LotteryConfig(capacity=3, rounding_mode="ceil", target_group="x")
        self.assertIs(config.rounding_mode, RoundingMode.CEIL)


class TestRunIdentifiers(unittest.TestCase):
    def test_run_salt_is_256_bit_hex(self):
        salt = generate_run_salt()
        self.assertRegex(salt, r"^[0-9a-f]{64}$")
        self.assertNotEqual(salt, generate_run_salt())

    def test_run_id_format(self):
        now = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        run_id = generate_run_id(now)
        self.assertTrue(run_id.startswith("run-20250102T030405Z-"))
        self.assertTrue(re.fullmatch(r"run-\d{8}T\d{6}Z-[0-9A-Za-z]{6}", run_id))


if __name__ == "__main__":
    unittest.main()
