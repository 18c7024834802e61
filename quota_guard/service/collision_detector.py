"""Threshold checks on association set sizes."""

from quota_guard.models import AssociationCounts, CollisionReport, CollisionStatus


class CollisionDetector:
    """
    Flag identity collisions.

    A fingerprint collision means one fingerprint was replayed from too many
    addresses (spoofed or shared fingerprint). An address collision means one
    address drove too many fingerprints (bot farm, NAT abuse).
    """

    def __init__(self, fingerprint_threshold: int = 3, address_threshold: int = 5):
        self.fingerprint_threshold = fingerprint_threshold
        self.address_threshold = address_threshold

    def evaluate(self, fp_peer_count: int, addr_peer_count: int) -> CollisionReport:
        return CollisionReport(
            fingerprint=CollisionStatus(
                detected=fp_peer_count >= self.fingerprint_threshold,
                count=fp_peer_count,
                threshold=self.fingerprint_threshold,
            ),
            address=CollisionStatus(
                detected=addr_peer_count >= self.address_threshold,
                count=addr_peer_count,
                threshold=self.address_threshold,
            ),
        )

    def __call__(self, counts: AssociationCounts) -> CollisionReport:
        return self.evaluate(counts.fp_peer_count, counts.addr_peer_count)

    def __str__(self) -> str:
        return (
            f"CollisionDetector(fingerprint_threshold={self.fingerprint_threshold}, "
            f"address_threshold={self.address_threshold})"
        )
