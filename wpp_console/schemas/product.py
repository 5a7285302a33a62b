"""Product card schemas."""

from pydantic import Field

from wpp_console.schemas.common import WireModel


class Product(WireModel):
    """Catalog product as sent in a product card."""

    name: str = Field(..., min_length=1)
    price: int | float | str
    currency: str = "IDR"
    description: str | None = None
    in_stock: bool = True
    images: list[str] = Field(default_factory=list)
    image_url: str | None = None

    @property
    def primary_image(self) -> str | None:
        return self.images[0] if self.images else self.image_url

    def format_card(self) -> str:
        """Render the WhatsApp message body for this product."""
        text = f"🛍️ *{self.name}*\n\n💰 Price: {self.currency or 'IDR'} {self.price}\n"
        if self.description:
            text += f"\n📝 {self.description}\n"
        text += "\n✅ In Stock" if self.in_stock else "\n❌ Out of Stock"
        return text
