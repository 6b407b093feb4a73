"""Tests for job terms validation and parameter models."""

import pytest
from pydantic import ValidationError

from eacc.schema import MAX_TITLE_LENGTH, JobEvent, JobEventType, PublishJobParams, check_tags

from conftest import CONTENT_HASH, ONE_ETH, TOKEN


class TestTags:
    def test_exactly_one_mece_tag(self):
        assert check_tags(["DS", "python"]) == ("DS", "python")

    @pytest.mark.parametrize("tags", [("python",), ("DS", "DT"), ()])
    def test_rejects_zero_or_many(self, tags):
        with pytest.raises(ValueError, match="exactly one MECE tag"):
            check_tags(tags)


class TestJobTerms:
    def test_valid_terms(self, make_terms, creator):
        terms = make_terms(creator=creator.address.lower())

        assert terms.creator == creator.address
        assert terms.arbitrator is not None

    def test_zero_arbitrator_means_none(self, make_terms):
        assert make_terms(arbitrator="0x" + "00" * 20).arbitrator is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": ""},
            {"title": "x" * (MAX_TITLE_LENGTH + 1)},
            {"amount": 0},
            {"max_time": 0},
            {"tags": ("react",)},
            {"token": "0x" + "00" * 20},
            {"creator": "not an address"},
        ],
    )
    def test_invalid_terms(self, make_terms, overrides):
        with pytest.raises(ValidationError):
            make_terms(**overrides)

    def test_terms_are_frozen(self, make_terms):
        terms = make_terms()

        with pytest.raises(ValidationError):
            terms.amount = 1


class TestParams:
    def test_terms_for_sets_whitelist_flag(self, creator, worker):
        """Publishing with allowed workers turns on the whitelist."""
        params = PublishJobParams(
            title="Audit a contract",
            content_hash=CONTENT_HASH,
            multiple_applicants=True,
            tags=("DS",),
            token=TOKEN,
            amount=ONE_ETH,
            max_time=600,
            allowed_workers=(worker.address,),
        )

        terms = params.terms_for(creator.address)

        assert terms.creator == creator.address
        assert terms.whitelist_workers
        assert terms.arbitrator is None

    def test_created_event_carries_terms(self, make_terms):
        terms = make_terms()

        event = JobEvent.created(terms, timestamp=5)

        assert event.type == JobEventType.CREATED
        assert event.actor == terms.creator
        assert event.payload["terms"]["amount"] == terms.amount
