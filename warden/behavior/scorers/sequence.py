"""Interaction sequence — long-horizon repetition of the same action loop.

Over the macro history, measures how repetitive the stream of 4-action
sequences is (1 - distinct / total: a bot looping k actions scores close to
1, a person close to 0), and flags a stream that only ever uses one or two
action types.
"""

from warden.behavior.scorers import Scorer, top_ngram


def repetition(types: list, n: int) -> float:
    grams = [tuple(types[i:i + n]) for i in range(len(types) - n + 1)]
    if not grams:
        return 0.0
    return 1.0 - len(set(grams)) / len(grams)


class InteractionSequence(Scorer):
    id = "sequence"
    name = "Interaction Sequence"
    horizon = "macro"
    weight = 0.15
    min_samples = 20

    ngram_size = 4
    repetition_threshold = 0.6
    repetition_weight = 0.6
    narrow_types = 2
    narrow_min_actions = 30
    narrow_weight = 0.4

    def select(self, profile, now):
        return profile.action_history.samples(now)

    def score(self, samples, profile, now):
        types = [s.action_type for s in samples]
        total = 0.0
        if repetition(types, self.ngram_size) > self.repetition_threshold:
            total += self.repetition_weight
        if len(types) >= self.narrow_min_actions and len(set(types)) <= self.narrow_types:
            total += self.narrow_weight
        return total

    def evidence(self, samples, profile, now):
        types = [s.action_type for s in samples]
        gram, repeats, _ = top_ngram(types, self.ngram_size)
        return {
            "repetition": round(repetition(types, self.ngram_size), 3),
            "top_sequence": list(gram) if gram else [],
            "top_sequence_repeats": repeats,
            "distinct_actions": len(set(types)),
        }
