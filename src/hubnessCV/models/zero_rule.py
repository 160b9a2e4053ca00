"""
Zero-rule baseline: always predicts the most frequent training class.
"""

import numpy as np

from .base_model import BaseModel


class ZeroRuleClassifier(BaseModel):
    """Majority-class baseline."""

    def __init__(self):
        super().__init__()
        self.majority_class_ = 0

    def train(self) -> None:
        counts = np.bincount(self.train_labels_, minlength=self.num_classes_)
        self.majority_class_ = int(np.argmax(counts)) if len(counts) else 0
        self.is_trained = True

    def predict(self, num_points, test_to_train_distances=None, test_neighbors=None):
        return np.full(num_points, self.majority_class_, dtype=np.intp)
