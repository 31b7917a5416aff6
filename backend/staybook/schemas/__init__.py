"""Pydantic schemas for the Staybook reservations API."""

from staybook.schemas.listing import *
from staybook.schemas.availability import *
from staybook.schemas.booking import *
from staybook.schemas.calendar import *
