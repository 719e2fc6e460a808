"""Garage entries: a user's scooters, either favorited or owned"""
from enum import Enum


class GarageStatus(Enum):
    FAVORITED = 'favorited'  # "Collection"
    OWNED = 'owned'  # "Écurie"

    @classmethod
    def from_flag(cls, is_owned):
        return cls.OWNED if is_owned else cls.FAVORITED

    @property
    def is_owned(self):
        return self is GarageStatus.OWNED


class GarageEntry:

    def __init__(self, id, user_id, scooter_model_id, status=GarageStatus.FAVORITED, nickname=None,
                 custom_photo_url=None, current_km=None, next_maintenance_km=None,
                 last_maintenance_date=None, added_at=None, scooter=None):
        self.id = id
        self.user_id = user_id
        self.scooter_model_id = scooter_model_id
        self.status = status
        self.nickname = nickname
        self.custom_photo_url = custom_photo_url
        self.current_km = current_km
        self.next_maintenance_km = next_maintenance_km
        self.last_maintenance_date = last_maintenance_date
        self.added_at = added_at
        self.scooter = scooter

    @property
    def is_owned(self):
        return self.status.is_owned

    @property
    def display_name(self):
        if self.nickname:
            return self.nickname
        return (self.scooter or {}).get('name', '')

    @property
    def km_to_maintenance(self):
        if self.current_km is None or self.next_maintenance_km is None:
            return None
        return max(self.next_maintenance_km - self.current_km, 0)

    @classmethod
    def from_row(cls, row, scooter=None):
        return cls(
            id=row['id'],
            user_id=row.get('user_id'),
            scooter_model_id=row['scooter_model_id'],
            status=GarageStatus.from_flag(row.get('is_owned')),
            nickname=row.get('nickname'),
            custom_photo_url=row.get('custom_photo_url'),
            current_km=row.get('current_km'),
            next_maintenance_km=row.get('next_maintenance_km'),
            last_maintenance_date=row.get('last_maintenance_date'),
            added_at=row.get('added_at'),
            scooter=scooter,
        )

    def __repr__(self):
        return f"GarageEntry({self.id!r}, {self.status.name})"
