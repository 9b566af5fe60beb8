"""Cohen-Sutherland clipping of segments against an axis aligned rectangle."""

from pymaze.geometry import Edge
from pymaze.utils import Vec2d

INSIDE = 0b0000
LEFT = 0b0001
RIGHT = 0b0010
BOTTOM = 0b0100
TOP = 0b1000


def outcode(point: Vec2d, lower: Vec2d, upper: Vec2d) -> int:
    code = INSIDE
    if point[0] < lower[0]:
        code |= LEFT
    elif point[0] > upper[0]:
        code |= RIGHT
    if point[1] < lower[1]:
        code |= BOTTOM
    elif point[1] > upper[1]:
        code |= TOP
    return code


def clip_edge(edge: Edge, lower: Vec2d, upper: Vec2d) -> tuple[bool, bool]:
    """
    Clip ``edge`` to the rectangle ``[lower, upper]``, editing its endpoints
    in place.

    :return: (visible, edited). ``edited`` is True as soon as one endpoint
        was moved, even if the edge later turns out to be invisible.
    """
    code_a = outcode(edge.a, lower, upper)
    code_b = outcode(edge.b, lower, upper)
    edited = False

    while True:
        if not (code_a | code_b):
            return True, edited
        if code_a & code_b:
            return False, edited

        # the endpoint that is "more outside" gets moved
        code_out = max(code_a, code_b)
        (x0, z0), (x1, z1) = edge.a, edge.b

        if code_out & TOP:
            x = x0 + (x1 - x0) * (upper[1] - z0) / (z1 - z0)
            z = float(upper[1])
        elif code_out & BOTTOM:
            x = x0 + (x1 - x0) * (lower[1] - z0) / (z1 - z0)
            z = float(lower[1])
        elif code_out & RIGHT:
            z = z0 + (z1 - z0) * (upper[0] - x0) / (x1 - x0)
            x = float(upper[0])
        else:
            z = z0 + (z1 - z0) * (lower[0] - x0) / (x1 - x0)
            x = float(lower[0])

        edited = True
        if code_out == code_a:
            edge.a = (x, z)
            code_a = outcode(edge.a, lower, upper)
        else:
            edge.b = (x, z)
            code_b = outcode(edge.b, lower, upper)
