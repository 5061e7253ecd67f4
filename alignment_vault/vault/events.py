from enum import StrEnum
from typing import Literal

from pydantic import BaseModel


class RewardOutcome(StrEnum):
    PAID = "paid"
    REJECTED = "rejected"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    NONE = "none"


class VaultEvent(BaseModel):
    name: str
    timestamp: int


class ContributionReceived(VaultEvent):
    name: Literal["ContributionReceived"] = "ContributionReceived"
    contributor: str
    amount: int
    via: str


class ConversionExecuted(VaultEvent):
    name: Literal["ConversionExecuted"] = "ConversionExecuted"
    caller: str
    round_total: int
    swapped_in: int
    target_out: int
    liquidity: int
    swap_venue: str | None
    contributor_count: int


class SharesIssued(VaultEvent):
    name: Literal["SharesIssued"] = "SharesIssued"
    contributor: str
    contribution: int
    shares: int


class DustRedistributed(VaultEvent):
    name: Literal["DustRedistributed"] = "DustRedistributed"
    recipient: str
    shares: int


class FeesHarvested(VaultEvent):
    name: Literal["FeesHarvested"] = "FeesHarvested"
    base_fees: int
    target_fees: int
    target_converted: int
    credited: int


class FeesClaimed(VaultEvent):
    name: Literal["FeesClaimed"] = "FeesClaimed"
    account: str
    amount: int


class FeesDeposited(VaultEvent):
    name: Literal["FeesDeposited"] = "FeesDeposited"
    sender: str
    amount: int


class ConversionReward(VaultEvent):
    name: Literal["ConversionReward"] = "ConversionReward"
    recipient: str
    amount: int
    outcome: RewardOutcome


class ConfigurationChanged(VaultEvent):
    name: Literal["ConfigurationChanged"] = "ConfigurationChanged"
    field: str
    value: str
