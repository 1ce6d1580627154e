import math

from .errors import EmptyWheel

# The pointer sits at the top of the wheel, a quarter turn from angle zero
POINTER_OFFSET_DEGREES = 90


def slice_index(angle, item_count, arc=None):
    """
    Map a terminal rotation angle (radians) to the slice under the pointer.

    arc is the slice width the spin was started with; it defaults to the width for
    item_count slices. The result is always reduced modulo the current item_count.
    fmod keeps the sign of the dividend so negative angles map the same way the
    browser wheel maps them.
    """
    if item_count <= 0:
        raise EmptyWheel()
    if arc is None:
        arc = math.pi * 2 / item_count
    degrees = angle * 180 / math.pi + POINTER_OFFSET_DEGREES
    arcd = arc * 180 / math.pi
    index = math.floor((360 - math.fmod(degrees, 360)) / arcd)
    return index % item_count


def resolve_prize(angle, items, arc=None):
    """Prize label under the pointer"""
    return items[slice_index(angle, len(items), arc)]
