from typing import Literal, Optional, TypedDict, Union

from bson import ObjectId


Role = Literal["organization", "merchant", "homeless", "donor", "admin"]


class AccountDocument(TypedDict, total=False):

    _id: ObjectId
    username: Optional[str]
    email: str
    role: Role
    is_active: bool


class OrganizationDocument(TypedDict, total=False):
    _id: ObjectId
    user_id: ObjectId
    org_name: str
    name: Optional[str]
    city: Optional[str]
    state: Optional[str]
    logo: Optional[str]
    is_deleted: bool


class MerchantDocument(TypedDict, total=False):
    _id: ObjectId
    user_id: ObjectId
    business_name: str
    business_email: Optional[str]
    city: Optional[str]
    state: Optional[str]
    is_deleted: bool


class HomelessDocument(TypedDict, total=False):
    _id: ObjectId
    user_id: ObjectId
    full_name: str
    name: Optional[str]
    profile_picture: Optional[str]
    is_deleted: bool


ProfileDocument = Union[OrganizationDocument, MerchantDocument, HomelessDocument]
