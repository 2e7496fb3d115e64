import json
import unittest
from datetime import datetime, timezone

from fairdraw.audit import AuditSummary, InMemoryKeyProvider, parse_audit_jsonl
from fairdraw.lottery import Applicant, LotteryConfig
from fairdraw.randomness.consensus import PublicRandomness, RandomnessMetric
from fairdraw.verify.replay import (
    MembershipStatus,
    verify_audit_and_replay,
    verify_individual_result,
    verify_published_artifacts,
)
from fairdraw.workflows import execute_lottery

NOW = datetime(2025, 6, 1, 9, 0, 0, tzinfo=timezone.utc)


def run_fixture():
    applicants = [
        Applicant(anon_id=f"p{i:02d}", priority_match=True, member_id=f"m-p{i:02d}")
        for i in range(8)
    ]
    applicants += [
        Applicant(anon_id=f"o{i:02d}", priority_match=False, member_id=f"m-o{i:02d}")
        for i in range(12)
    ]
    applicants.append(
        Applicant(anon_id="bad", valid=False, invalid_reasons=("address missing",), member_id="m-bad")
    )
    randomness = PublicRandomness(
        btc=RandomnessMetric(metric="BTC", final_value="64000.25"),
        nist=RandomnessMetric(metric="NIST", final_value="123456789"),
    )
    return execute_lottery(
        applicants,
        LotteryConfig(capacity=10, rounding_mode="ceil", target_group="아라동"),
        "aa" * 32,
        randomness=randomness,
        key_provider=InMemoryKeyProvider(),
        run_id="run-20250601T090000Z-TeSt01",
        run_salt_hex="bb" * 32,
        now=NOW,
    )


class TestReplayVerification(unittest.TestCase):
    def setUp(self):
        self.outcome = run_fixture()
        self.summary_payload = json.loads(self.outcome.audit_summary_json)

    def replay(self, summary_payload=None, jsonl=None):
        return verify_published_artifacts(
            json.dumps(summary_payload or self.summary_payload),
            self.outcome.audit_jsonl if jsonl is None else jsonl,
        )

    def test_untouched_artifacts_replay(self):
        verdict = self.replay()
        self.assertTrue(verdict.chain_ok)
        self.assertTrue(verdict.replay_ok)
        self.assertEqual(verdict.reasons, [])
        self.assertEqual(list(verdict.replay_result.winners), self.outcome.result.winner_ids)
        self.assertEqual(verdict.replay_result.seed_hash, self.outcome.result.seed_hash)

    def test_in_memory_entry_point(self):
        verdict = verify_audit_and_replay(
            AuditSummary.from_json_str(self.outcome.audit_summary_json),
            parse_audit_jsonl(self.outcome.audit_jsonl),
        )
        self.assertTrue(verdict.replay_ok)

    def test_swapped_winner_order_detected(self):
        winners = self.summary_payload["drawOutput"]["winners"]
        winners[0], winners[1] = winners[1], winners[0]
        verdict = self.replay()
        self.assertFalse(verdict.replay_ok)
        self.assertTrue(verdict.chain_ok)
        self.assertEqual(verdict.reasons, ["winner ordering mismatch"])

    def test_swapped_waitlist_order_detected(self):
        waitlist = self.summary_payload["drawOutput"]["waitlist"]
        waitlist.reverse()
        self.assertEqual(self.replay().reasons, ["waitlist ordering mismatch"])

    def test_forged_seed_hash_detected(self):
        self.summary_payload["seedHash"] = "0" * 64
        verdict = self.replay()
        self.assertFalse(verdict.replay_ok)
        self.assertEqual(verdict.reasons, ["seed hash mismatch"])

    def test_changed_randomness_breaks_seed_and_ordering(self):
        self.summary_payload["randomness"]["btc"]["finalValue"] = "64000.26"
        verdict = self.replay()
        self.assertIn("seed hash mismatch", verdict.reasons)
        self.assertIn("winner ordering mismatch", verdict.reasons)

    def test_tampered_log_line_fails_chain(self):
        lines = self.outcome.audit_jsonl.splitlines()
        event = json.loads(lines[1])
        event["data"]["btc"]["finalValue"] = "1.00"
        lines[1] = json.dumps(event)
        verdict = self.replay(jsonl="\n".join(lines))
        self.assertFalse(verdict.chain_ok)
        self.assertFalse(verdict.replay_ok)
        self.assertIn("entry_hash mismatch at index 1", verdict.reasons)

    def test_final_hash_mismatch(self):
        self.summary_payload["finalHash"] = "f" * 64
        verdict = self.replay()
        self.assertTrue(verdict.chain_ok)
        self.assertEqual(verdict.reasons, ["final hash mismatch with summary"])

    def test_legacy_nasdaq_metric_is_accepted(self):
        randomness = self.summary_payload["randomness"]
        randomness["nasdaq"] = randomness.pop("nist")
        self.assertTrue(self.replay().replay_ok)

    def test_malformed_summary(self):
        verdict = verify_published_artifacts("{}", self.outcome.audit_jsonl)
        self.assertFalse(verdict.replay_ok)
        self.assertTrue(verdict.reasons[0].startswith("audit_summary.json could not be parsed"))
        self.assertIsNone(verdict.replay_result)

    def test_malformed_log(self):
        verdict = self.replay(jsonl="not json")
        self.assertFalse(verdict.chain_ok)
        self.assertIn("line 1", verdict.reasons[0])


class TestIndividualLookup(unittest.TestCase):
    def setUp(self):
        outcome = run_fixture()
        self.outcome = outcome
        self.replayed = verify_published_artifacts(
            outcome.audit_summary_json, outcome.audit_jsonl
        ).replay_result

    def test_winner_by_anon_id(self):
        anon = self.outcome.result.winner_ids[0]
        result = verify_individual_result(anon, self.replayed)
        self.assertIs(result.status, MembershipStatus.WINNER)
        self.assertEqual(result.applicant.anon_id, anon)

    def test_waitlist_rank_by_member_id(self):
        third = self.outcome.result.waitlist[2]
        result = verify_individual_result(f"  {third.member_id} ", self.replayed)
        self.assertIs(result.status, MembershipStatus.WAITLIST)
        self.assertEqual(result.waitlist_rank, 3)

    def test_invalid_applicant_not_selected(self):
        result = verify_individual_result("bad", self.replayed)
        self.assertIs(result.status, MembershipStatus.NOT_SELECTED)
        self.assertFalse(result.applicant.valid)

    def test_unknown_and_blank_lookup(self):
        self.assertIs(verify_individual_result("nobody", self.replayed).status, MembershipStatus.NOT_FOUND)
        self.assertIs(verify_individual_result("   ", self.replayed).status, MembershipStatus.NOT_FOUND)


if __name__ == "__main__":
    unittest.main()
