"""
Pydantic v2 input schemas for catalog mutations.

All schemas use extra="forbid" to reject unknown fields. Prices are integers
in minor currency units.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ProductType = Literal["physical", "digital", "gift_card"]
ProductStatus = Literal["draft", "active", "archived"]
DigitalStockMode = Literal["unlimited", "limited"]
GiftCardCodeMode = Literal["auto", "manual"]
ReviewStatus = Literal["pending", "approved", "rejected"]


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ProductImage(_Strict):
    url: str = Field(..., min_length=1)
    public_id: Optional[str] = None
    alt: Optional[str] = None
    is_main: bool = False


class ColorOption(_Strict):
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    hex: Optional[str] = None


class Dimensions(_Strict):
    length: float = Field(..., ge=0, description="cm")
    width: float = Field(..., ge=0, description="cm")
    height: float = Field(..., ge=0, description="cm")


class Specification(_Strict):
    key: str
    value: str


class DigitalFile(_Strict):
    name: str
    url: str
    public_id: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0)


class ProductCreate(_Strict):
    """Fields accepted when creating a product. New products start as draft or active."""
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    story: Optional[str] = None

    product_type: ProductType = "physical"
    digital_files: Optional[List[DigitalFile]] = None
    max_downloads: Optional[int] = Field(None, ge=0)
    digital_stock_mode: Optional[DigitalStockMode] = None
    digital_stock_count: Optional[int] = Field(None, ge=0)
    gift_card_code_mode: Optional[GiftCardCodeMode] = None

    base_price: int = Field(..., ge=0, description="Minor currency units")
    compare_at_price: Optional[int] = Field(None, ge=0)

    images: List[ProductImage] = Field(default_factory=list)
    color_options: Optional[List[ColorOption]] = None
    size_options: Optional[List[str]] = None

    weight: Optional[float] = Field(None, ge=0, description="grams")
    dimensions: Optional[Dimensions] = None
    requires_shipping: bool = True
    ships_independently: Optional[bool] = None

    category_id: Optional[str] = None
    vendor: Optional[str] = None
    tags: Optional[List[str]] = None
    specifications: Optional[List[Specification]] = None
    features: Optional[List[str]] = None

    meta_title: Optional[str] = None
    meta_description: Optional[str] = None

    status: Literal["draft", "active"] = "draft"
    shipping_label: Optional[str] = None
    shipping_sublabel: Optional[str] = None
    warranty_label: Optional[str] = None
    warranty_sublabel: Optional[str] = None
    policy_content: Optional[str] = None
    is_featured: Optional[bool] = None


class ProductUpdate(_Strict):
    """Partial product patch; only fields the caller sets are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    story: Optional[str] = None

    product_type: Optional[ProductType] = None
    digital_files: Optional[List[DigitalFile]] = None
    max_downloads: Optional[int] = Field(None, ge=0)
    digital_stock_mode: Optional[DigitalStockMode] = None
    digital_stock_count: Optional[int] = Field(None, ge=0)
    gift_card_code_mode: Optional[GiftCardCodeMode] = None

    base_price: Optional[int] = Field(None, ge=0)
    compare_at_price: Optional[int] = Field(None, ge=0)

    images: Optional[List[ProductImage]] = None
    color_options: Optional[List[ColorOption]] = None
    size_options: Optional[List[str]] = None

    weight: Optional[float] = Field(None, ge=0)
    dimensions: Optional[Dimensions] = None
    requires_shipping: Optional[bool] = None
    ships_independently: Optional[bool] = None

    category_id: Optional[str] = None
    vendor: Optional[str] = None
    tags: Optional[List[str]] = None
    specifications: Optional[List[Specification]] = None
    features: Optional[List[str]] = None

    meta_title: Optional[str] = None
    meta_description: Optional[str] = None

    status: Optional[ProductStatus] = None
    shipping_label: Optional[str] = None
    shipping_sublabel: Optional[str] = None
    warranty_label: Optional[str] = None
    warranty_sublabel: Optional[str] = None
    policy_content: Optional[str] = None
    is_featured: Optional[bool] = None


class VariantInput(_Strict):
    """One variant row as sent by the variant matrix; the product comes from the call."""
    sku: str = Field(..., min_length=1, max_length=128)
    color_id: Optional[str] = None
    size: Optional[str] = None
    stock_count: int = Field(0, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    price_adjustment: Optional[int] = None
    weight: Optional[float] = Field(None, ge=0)
    dimensions: Optional[Dimensions] = None
    image_url: Optional[str] = None
    is_default: bool = False


class VariantCreate(VariantInput):
    product_id: str


class VariantUpdate(_Strict):
    sku: Optional[str] = Field(None, min_length=1, max_length=128)
    color_id: Optional[str] = None
    size: Optional[str] = None
    stock_count: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    price_adjustment: Optional[int] = None
    weight: Optional[float] = Field(None, ge=0)
    dimensions: Optional[Dimensions] = None
    image_url: Optional[str] = None
    is_default: Optional[bool] = None


class CategoryCreate(_Strict):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    image_url: Optional[str] = None
    parent_id: Optional[str] = None
    sort_order: Optional[int] = None


class CategoryUpdate(_Strict):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    image_url: Optional[str] = None
    parent_id: Optional[str] = None
    sort_order: Optional[int] = None


class ReviewSubmit(_Strict):
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, max_length=255)
    content: str = Field(..., min_length=1)
    images: Optional[List[str]] = None
