"""Nearest-neighbour identity matching against known family members."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from travelmap.services.face_extraction import Detection
from travelmap.storage.photo_store import TrainingDescriptor
from travelmap.storage.schemas import FamilyMember

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "unknown"


@dataclass
class LabeledDescriptors:
    label: str
    descriptors: List[np.ndarray]


@dataclass
class BestMatch:
    label: str
    distance: float

    @property
    def is_unknown(self) -> bool:
        return self.label == UNKNOWN_LABEL


class FaceMatcher:
    """Mean Euclidean distance per label, best label wins if within threshold."""

    def __init__(self, labeled: Sequence[LabeledDescriptors], threshold: float) -> None:
        if not labeled:
            raise ValueError("FaceMatcher needs at least one labeled descriptor set")
        self._labeled = list(labeled)
        self._threshold = threshold

    @staticmethod
    def _mean_distance(query: np.ndarray, descriptors: Sequence[np.ndarray]) -> float:
        stacked = np.stack(descriptors, axis=0)
        return float(np.linalg.norm(stacked - query, axis=1).mean())

    def find_best_match(self, query: np.ndarray) -> BestMatch:
        query = np.asarray(query, dtype=np.float32)
        best = BestMatch(UNKNOWN_LABEL, float("inf"))
        for entry in self._labeled:
            usable = [d for d in entry.descriptors if d.shape == query.shape]
            if not usable:
                continue
            distance = self._mean_distance(query, usable)
            if distance < best.distance:
                best = BestMatch(entry.label, distance)
        if best.distance > self._threshold:
            return BestMatch(UNKNOWN_LABEL, best.distance)
        return best


@dataclass
class MatchedFace:
    """A detection plus the advisory identity suggestion, if any."""

    detection: Detection
    matched_member: Optional[FamilyMember] = None
    confidence: Optional[float] = None

    @property
    def box(self):
        return self.detection.box

    @property
    def descriptor(self) -> np.ndarray:
        return self.detection.descriptor


class IdentityMatcher:
    """Turns detections into advisory member suggestions."""

    def __init__(self, threshold: float = 0.55) -> None:
        self.threshold = threshold

    def labeled_descriptors(
        self,
        members: Sequence[FamilyMember],
        training: Iterable[TrainingDescriptor],
    ) -> List[LabeledDescriptors]:
        """Reference descriptors per member.

        Descriptors confirmed by tagging photos take precedence; enrolled
        descriptors are only used for members that have none from photos.
        """
        by_member: Dict[str, List[np.ndarray]] = defaultdict(list)
        for item in training:
            by_member[item.member_id].append(item.descriptor)

        labeled = []
        for member in members:
            from_photos = by_member.get(member.id, [])
            combined = from_photos if from_photos else member.descriptors()
            if combined:
                labeled.append(LabeledDescriptors(label=member.id, descriptors=combined))
        return labeled

    def match_faces(
        self,
        detections: Sequence[Detection],
        members: Sequence[FamilyMember],
        training: Iterable[TrainingDescriptor] = (),
    ) -> List[MatchedFace]:
        if not members:
            return [MatchedFace(detection=d) for d in detections]

        labeled = self.labeled_descriptors(members, training)
        if not labeled:
            return [MatchedFace(detection=d) for d in detections]

        matcher = FaceMatcher(labeled, self.threshold)
        by_id = {member.id: member for member in members}
        results = []
        for detection in detections:
            match = matcher.find_best_match(detection.descriptor)
            if match.is_unknown:
                results.append(MatchedFace(detection=detection))
                continue
            member = by_id[match.label]
            logger.debug("Face matched %s (distance %.3f)", member.name, match.distance)
            results.append(MatchedFace(detection=detection, matched_member=member, confidence=1.0 - match.distance))
        return results
