"""
Season display labels.

Ledger entries point at a Season record, while summaries are keyed by a
display label such as "Season 1" or its Arabic/Kurdish equivalent. These
helpers translate between the two.
"""
import logging

logger = logging.getLogger(__name__)


# ordinal -> (English, Arabic, Kurdish)
SEASON_LABELS = {
    1: ('Season 1', 'الموسم الأول', 'وەرزی یەکەم'),
    2: ('Season 2', 'الموسم الثاني', 'وەرزی دووەم'),
    3: ('Season 3', 'الموسم الثالث', 'وەرزی سێیەم'),
    4: ('Season 4', 'الموسم الرابع', 'وەرزی چوارەم'),
}

_LABEL_TO_ORDINAL = {
    label: ordinal
    for ordinal, labels in SEASON_LABELS.items()
    for label in labels
}

SEASON_DISPLAY_CHOICES = [(label, label) for label in _LABEL_TO_ORDINAL]


def is_season_label(label):
    return label in _LABEL_TO_ORDINAL


def ordinal_for_label(label):
    """Return the ordinal season (1-4) a display label stands for, or None."""
    return _LABEL_TO_ORDINAL.get(label)


def canonical_labels(ordinal):
    """The fixed (English, Arabic, Kurdish) labels for an ordinal, or ()."""
    return SEASON_LABELS.get(ordinal, ())


def variants_for(season):
    """
    Ordered list of display labels a season may appear under in a summary.

    Configured per-language names come first (English, Kurdish, Arabic), then
    the plain name, then the canonical labels for the season's ordinal
    position. Strings that are not recognised season labels are skipped.
    An empty list means nothing usable is configured and the ordinal is out
    of range.
    """
    variants = []
    configured = season.localized_names + [season.name]
    for label in configured + list(canonical_labels(season.order)):
        if label and is_season_label(label) and label not in variants:
            variants.append(label)

    if not variants:
        logger.warning(f"Season {season.pk} has order {season.order} with no display labels")
    return variants


def resolve_summary(lookup_fn, student, subject, season):
    """
    Try each variant of `season` with lookup_fn(student, subject, label)
    and return the first hit, or None.
    """
    for label in variants_for(season):
        found = lookup_fn(student, subject, label)
        if found is not None:
            return found
    return None
