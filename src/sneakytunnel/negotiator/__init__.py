"""HTTP rendezvous with the negotiator service."""

from sneakytunnel.negotiator.client import NegotiatorClient

__all__ = ["NegotiatorClient"]
