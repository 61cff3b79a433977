"""Small immutable 2D, 3D and homogeneous 4D vectors."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class Vec2:
    """A two-dimensional vector."""

    x: float = 0.0
    y: float = 0.0

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y

    def __add__(self, other: Vec2) -> Vec2:
        return Vec2(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Vec2) -> Vec2:
        return Vec2(self.x - other.x, self.y - other.y)

    def __mul__(self, factor: float) -> Vec2:
        return Vec2(self.x * factor, self.y * factor)

    __rmul__ = __mul__

    def __truediv__(self, factor: float) -> Vec2:
        return Vec2(self.x / factor, self.y / factor)

    def length(self) -> float:
        """Euclidean length."""
        return math.hypot(self.x, self.y)

    def dot(self, other: Vec2) -> float:
        """Dot product with ``other``."""
        return self.x * other.x + self.y * other.y

    def normalized(self) -> Vec2:
        """This vector scaled to unit length."""
        return self / self.length()


@dataclass(frozen=True)
class Vec3:
    """A three-dimensional vector."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z

    def __add__(self, other: Vec3) -> Vec3:
        return Vec3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vec3) -> Vec3:
        return Vec3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, factor: float) -> Vec3:
        return Vec3(self.x * factor, self.y * factor, self.z * factor)

    __rmul__ = __mul__

    def __truediv__(self, factor: float) -> Vec3:
        return Vec3(self.x / factor, self.y / factor, self.z / factor)

    def rotate_x(self, angle: float) -> Vec3:
        """Rotate about the x axis by ``angle`` radians."""
        c, s = math.cos(angle), math.sin(angle)
        return Vec3(self.x, self.y * c - self.z * s, self.y * s + self.z * c)

    def rotate_y(self, angle: float) -> Vec3:
        """Rotate about the y axis by ``angle`` radians."""
        c, s = math.cos(angle), math.sin(angle)
        return Vec3(self.x * c - self.z * s, self.y, self.x * s + self.z * c)

    def rotate_z(self, angle: float) -> Vec3:
        """Rotate about the z axis by ``angle`` radians."""
        c, s = math.cos(angle), math.sin(angle)
        return Vec3(self.x * c - self.y * s, self.x * s + self.y * c, self.z)

    def length(self) -> float:
        """Euclidean length."""
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def dot(self, other: Vec3) -> float:
        """Dot product with ``other``."""
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: Vec3) -> Vec3:
        """Cross product ``self x other``."""
        return Vec3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def normalized(self) -> Vec3:
        """This vector scaled to unit length."""
        return self / self.length()

    def to_vec4(self) -> Vec4:
        """Homogeneous form with ``w`` set to 1."""
        return Vec4(self.x, self.y, self.z, 1.0)


@dataclass(frozen=True)
class Vec4:
    """A four-component (homogeneous) vector."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    w: float = 0.0

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z
        yield self.w

    def to_vec3(self) -> Vec3:
        """Drop the ``w`` component."""
        return Vec3(self.x, self.y, self.z)

    def to_vec2(self) -> Vec2:
        """Keep only ``x`` and ``y``."""
        return Vec2(self.x, self.y)