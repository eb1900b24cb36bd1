"""
Unit tests for the daily challenge ledger.
"""

import json
from datetime import date

from mini_trainer.storage.daily import ChallengeKind, DailyChallengeLedger, challenge_key

DAY = date(2024, 3, 1)


class TestDailyChallengeLedger:
    def test_keys(self):
        assert challenge_key(ChallengeKind.DAILY, DAY) == "daily-challenge-2024-03-01"
        assert challenge_key(ChallengeKind.BONUS, DAY) == "bonus-challenge-2024-03-01"

    def test_record_once(self, tmp_path):
        ledger = DailyChallengeLedger(tmp_path / "daily.json")
        assert ledger.record(ChallengeKind.DAILY, DAY, 3) is True
        assert ledger.record(ChallengeKind.DAILY, DAY, 3) is False
        assert ledger.is_completed(ChallengeKind.DAILY, DAY) is True
        assert ledger.is_completed(ChallengeKind.BONUS, DAY) is False

    def test_values_are_star_strings(self, tmp_path):
        path = tmp_path / "daily.json"
        DailyChallengeLedger(path).record(ChallengeKind.BONUS, DAY, 2)

        assert json.loads(path.read_text(encoding="utf-8")) == {"bonus-challenge-2024-03-01": "2"}
        assert DailyChallengeLedger(path).stars_for(ChallengeKind.BONUS, DAY) == 2

    def test_unparseable_value_counts_zero(self, tmp_path):
        path = tmp_path / "daily.json"
        path.write_text(json.dumps({"daily-challenge-2024-03-01": "lots"}), encoding="utf-8")
        ledger = DailyChallengeLedger(path)
        assert ledger.is_completed(ChallengeKind.DAILY, DAY) is True
        assert ledger.stars_for(ChallengeKind.DAILY, DAY) == 0

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "daily.json"
        path.write_text("[[[", encoding="utf-8")
        assert DailyChallengeLedger(path).entries == {}
