"""
Shared models and fixtures for the scoped serialization tests.
"""

from typing import Annotated, Literal

import pytest
from pydantic import BaseModel, Field

from syft_serde import Encrypted, Keys, Scope


class User(BaseModel):
    id: int
    name: Annotated[str, Scope("public")] = ""
    email: Annotated[str, Scope("read,write")] = ""
    phone: Annotated[str, Scope("self")] = ""
    password: Annotated[str, Scope("admin")] = ""
    ssn: Annotated[str, Scope("admin+pii")] = ""
    audit_log: Annotated[str, Scope("admin+security+executive")] = ""
    compliance_id: Annotated[str, Scope("compliance,admin+pii")] = ""


class Record(BaseModel):
    id: int
    name: Annotated[str, Scope("public")] = ""
    ssn: Annotated[str, Scope("admin+pii")] = ""
    compliance_id: Annotated[str, Scope("compliance,admin+pii")] = ""


class Address(BaseModel):
    street: Annotated[str, Scope("pii")] = ""
    city: str = ""


class Employee(BaseModel):
    id: int
    home: Address | None = None
    previous: list[Address] = []
    contacts: dict[str, Address] = {}
    salary: Annotated[int, Scope("hr")] = 0


class Profile(BaseModel):
    user_id: int = Field(alias="userId")
    display_name: Annotated[str, Keys(toml="display-name", yaml="displayName")] = ""
    nickname: str | None = None


class Patient(BaseModel):
    id: int
    diagnosis: Annotated[str, Encrypted(), Scope("medical")] = ""
    notes: Annotated[str | None, Encrypted()] = None


class Ward(BaseModel):
    name: str
    patients: list[Patient] = []


class Cat(BaseModel):
    kind: Literal["cat"] = "cat"
    tag: Annotated[str, Keys(toml="tag-name", yaml="tagName")] = ""
    secret: Annotated[str, Encrypted()] = ""


class Dog(BaseModel):
    kind: Literal["dog"] = "dog"
    tag: str = ""
    bark: str = ""


class Owner(BaseModel):
    name: str = ""
    pet: Cat | Dog | None = None
    pets: list[Cat | Dog] = []


class Kennel(BaseModel):
    pet: Annotated[Cat | Dog, Field(discriminator="kind")]


class Account(BaseModel):
    id: int
    password_hash: str = Field(default="", exclude=True)
    recovery_code: Annotated[str, Scope("admin")] = Field(default="", exclude=True)


USER_VALUES = {
    "id": 123,
    "name": "John Doe",
    "email": "john@example.com",
    "phone": "+1234567890",
    "password": "secret123",
    "ssn": "123-45-6789",
    "audit_log": "sensitive audit data",
    "compliance_id": "COMP-789",
}


@pytest.fixture
def user() -> User:
    return User(**USER_VALUES)


@pytest.fixture
def record() -> Record:
    return Record(id=7, name="Jane", ssn="987-65-4321", compliance_id="COMP-1")


@pytest.fixture
def employee() -> Employee:
    return Employee(
        id=1,
        home=Address(street="1 Main St", city="Springfield"),
        previous=[Address(street="9 Old Rd", city="Shelbyville")],
        contacts={"emergency": Address(street="5 Elm St", city="Ogdenville")},
        salary=90000,
    )


@pytest.fixture
def patient() -> Patient:
    return Patient(id=1, diagnosis="influenza", notes=None)
