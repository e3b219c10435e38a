# orderflow/services/cart_service.py
import json
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orderflow.data.models.cart import CartModel
from orderflow.data.models.cart_item import CartItemModel
from orderflow.domain.errors import ConcurrencyConflict, IdentityRequired, NotFound, ValidationError
from orderflow.domain.pricing import Discount, PricedLine, compute_totals
from orderflow.repos.cart_repo import CartRepo
from orderflow.repos.product_repo import ProductRepo
from orderflow.utils.clock import as_utc, utcnow
from orderflow.utils.logging import get_logger

logger = get_logger(__name__)


def variant_key(variant: dict | None) -> str:
    if not variant:
        return ""
    return json.dumps(variant, sort_keys=True, separators=(",", ":"), default=str)


def cart_discount(cart: CartModel) -> Discount | None:
    if not cart.coupon_code:
        return None
    return Discount.from_fields(cart.coupon_type, cart.coupon_value)


class CartService:
    """
    Koszyk: odczyt z read-repair (merge koszyka goscia, walidacja cen i stanow)
    oraz komendy modyfikujace (add, update, remove, clear, kupon, wysylka).

    Kazdy zapis jest chroniony polem version (optimistic locking).
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)

    # =====================================================
    # QUERY (read-repair)
    # =====================================================
    def reconcile(self, user_id: int | None = None, session_id: str | None = None) -> CartModel:
        if not user_id and not session_id:
            raise IdentityRequired()

        cart, changed = self._resolve_owner(user_id, session_id)

        if self._revalidate(cart):
            changed = True

        if changed:
            self._save(cart)

        return cart

    def _resolve_owner(self, user_id: int | None, session_id: str | None) -> tuple[CartModel, bool]:
        if not user_id:
            cart = self.repo.get_cart_by_session(session_id)
            if cart:
                return cart, False
            return self._create(session_id=session_id), False

        cart = self.repo.get_cart_by_user(user_id)
        session_cart = self.repo.get_cart_by_session(session_id) if session_id else None

        if cart and session_cart:
            logger.info(f"Merging session cart {session_cart.id} into cart {cart.id} of user {user_id}")
            self._merge(cart, session_cart)
            self.repo.delete_cart(session_cart)
            return cart, True

        if session_cart:
            # koszyk goscia przechodzi na uzytkownika, session_id znika
            logger.info(f"Assigning session cart {session_cart.id} to user {user_id}")
            session_cart.user_id = user_id
            session_cart.session_id = None
            return session_cart, True

        if cart:
            return cart, False

        return self._create(user_id=user_id), False

    def _create(self, **owner) -> CartModel:
        try:
            created = self.repo.create_cart(CartModel(version=1, **owner))
        except IntegrityError:
            # rownolegly request zalozyl koszyk pierwszy
            self.repo.rollback()
            existing = (
                self.repo.get_cart_by_user(owner["user_id"])
                if owner.get("user_id")
                else self.repo.get_cart_by_session(owner["session_id"])
            )
            if existing is None:
                raise
            return existing

        logger.info(f"Created cart {created.id} for {owner}")
        return created

    def _merge(self, cart: CartModel, session_cart: CartModel) -> None:
        by_identity = {(i.product_id, i.variant_key): i for i in cart.items}

        for incoming in session_cart.items:
            existing = by_identity.get((incoming.product_id, incoming.variant_key))
            if existing:
                # limit do stanu magazynu robi _revalidate
                existing.quantity += incoming.quantity
                continue

            copied = CartItemModel(
                product_id=incoming.product_id,
                name=incoming.name,
                image=incoming.image,
                price=incoming.price,
                quantity=incoming.quantity,
                variant=incoming.variant,
                variant_key=incoming.variant_key,
            )
            cart.items.append(copied)
            by_identity[(copied.product_id, copied.variant_key)] = copied

        if not cart.coupon_code and session_cart.coupon_code:
            cart.coupon_code = session_cart.coupon_code
            cart.coupon_type = session_cart.coupon_type
            cart.coupon_value = session_cart.coupon_value

        if not cart.shipping_name and session_cart.shipping_name:
            cart.shipping_name = session_cart.shipping_name
            cart.shipping_price = session_cart.shipping_price

    def _revalidate(self, cart: CartModel) -> bool:
        products = self.products.get_products(i.product_id for i in cart.items)
        changed = False

        for item in list(cart.items):
            product = products.get(item.product_id)

            if product is None or not product.is_active or product.count_in_stock < 1:
                logger.info(f"Dropping product {item.product_id} from cart {cart.id} (unavailable)")
                cart.items.remove(item)
                changed = True
                continue

            live_price = product.current_price
            if item.price != live_price:
                item.price = live_price
                changed = True

            if item.name != product.name or item.image != product.image:
                item.name = product.name
                item.image = product.image
                changed = True

            clamped = max(1, min(item.quantity, product.count_in_stock))
            if clamped != item.quantity:
                item.quantity = clamped
                changed = True

        return changed

    def _save(self, cart: CartModel) -> None:
        old_version = cart.version

        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=old_version,
            new_data={"version": old_version + 1},
        )

        # np. UPDATE carts SET version 3 WHERE id 1 AND version 2
        if rowcount == 0:
            self.repo.rollback()
            raise ConcurrencyConflict()

        self.repo.commit()
        logger.info(f"Cart {cart.id} saved, version {old_version + 1}")

    # =====================================================
    # COMMANDS
    # =====================================================
    def add_item(
        self,
        product_id: int,
        quantity: int = 1,
        variant: dict | None = None,
        user_id: int | None = None,
        session_id: str | None = None,
    ) -> CartModel:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        cart = self.reconcile(user_id, session_id)

        product = self.products.get_product(product_id)
        if not product:
            raise NotFound("Product not found")
        if not product.is_active:
            raise ValidationError("Product is not available")
        if product.count_in_stock < 1:
            raise ValidationError("Product is out of stock")
        if quantity > product.count_in_stock:
            raise ValidationError(f"Only {product.count_in_stock} items available")

        key = variant_key(variant)
        existing = next(
            (i for i in cart.items if i.product_id == product_id and i.variant_key == key),
            None,
        )

        if existing:
            new_quantity = existing.quantity + quantity
            if new_quantity > product.count_in_stock:
                raise ValidationError(
                    f"Cannot add {quantity} more items. Only {product.count_in_stock} available in total."
                )
            logger.info(f"Product {product_id} already in cart {cart.id}, quantity {existing.quantity} -> {new_quantity}")
            existing.quantity = new_quantity
        else:
            logger.info(f"Adding product {product_id} to cart {cart.id}")
            cart.items.append(
                CartItemModel(
                    product_id=product_id,
                    name=product.name,
                    image=product.image,
                    price=product.current_price,
                    quantity=quantity,
                    variant=variant,
                    variant_key=key,
                )
            )

        self._save(cart)
        return cart

    def update_item(
        self,
        item_id: int,
        quantity: int,
        user_id: int | None = None,
        session_id: str | None = None,
    ) -> CartModel:
        cart = self.reconcile(user_id, session_id)
        item = self._find_item(cart, item_id)

        if quantity <= 0:
            cart.items.remove(item)
        else:
            product = self.products.get_product(item.product_id)
            # ponad stan -> ustaw maksimum dostepne
            item.quantity = min(quantity, product.count_in_stock)

        self._save(cart)
        return cart

    def remove_item(self, item_id: int, user_id: int | None = None, session_id: str | None = None) -> CartModel:
        cart = self.reconcile(user_id, session_id)
        item = self._find_item(cart, item_id)

        logger.info(f"Removing item {item_id} from cart {cart.id}")
        cart.items.remove(item)

        self._save(cart)
        return cart

    def clear(self, user_id: int | None = None, session_id: str | None = None) -> CartModel:
        cart = self.reconcile(user_id, session_id)
        self.clear_cart(cart)
        return cart

    def clear_cart(self, cart: CartModel) -> None:
        """Empty the cart in place (cart record is kept)."""
        cart.items.clear()
        cart.coupon_code = None
        cart.coupon_type = None
        cart.coupon_value = None
        cart.shipping_name = None
        cart.shipping_price = None
        self._save(cart)

    def apply_coupon(self, code: str, user_id: int | None = None, session_id: str | None = None) -> CartModel:
        if not code or not code.strip():
            raise ValidationError("Coupon code is required")

        cart = self.reconcile(user_id, session_id)

        coupon = self.products.get_coupon(code.strip())
        if not coupon or not coupon.is_active:
            raise NotFound("Coupon not found")
        if coupon.expires_at and as_utc(coupon.expires_at) <= utcnow():
            raise ValidationError("Coupon has expired")

        # walidacja typu i wartosci
        Discount.from_fields(coupon.discount_type, coupon.discount_value)

        cart.coupon_code = coupon.code
        cart.coupon_type = coupon.discount_type
        cart.coupon_value = coupon.discount_value

        self._save(cart)
        logger.info(f"Coupon {coupon.code} applied to cart {cart.id}")
        return cart

    def remove_coupon(self, user_id: int | None = None, session_id: str | None = None) -> CartModel:
        cart = self.reconcile(user_id, session_id)
        cart.coupon_code = None
        cart.coupon_type = None
        cart.coupon_value = None
        self._save(cart)
        return cart

    def set_shipping_method(
        self,
        name: str,
        price: Decimal,
        user_id: int | None = None,
        session_id: str | None = None,
    ) -> CartModel:
        if not name:
            raise ValidationError("Shipping method is required")
        if price is None or Decimal(price) < 0:
            raise ValidationError("Shipping price cannot be negative")

        cart = self.reconcile(user_id, session_id)
        cart.shipping_name = name
        cart.shipping_price = Decimal(price)
        self._save(cart)
        return cart

    @staticmethod
    def _find_item(cart: CartModel, item_id: int) -> CartItemModel:
        item = next((i for i in cart.items if i.id == item_id), None)
        if item is None:
            raise NotFound("Item not found in cart")
        return item

    # =====================================================
    # VIEW
    # =====================================================
    @staticmethod
    def summary(cart: CartModel) -> Dict[str, Any]:
        totals = compute_totals(
            [PricedLine(price=i.price, quantity=i.quantity) for i in cart.items],
            discount=cart_discount(cart),
            shipping_price=cart.shipping_price or Decimal("0"),
        )

        #dict przeksztalcany w jsona
        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "session_id": cart.session_id,
            "items": [
                {
                    "id": i.id,
                    "product_id": i.product_id,
                    "name": i.name,
                    "image": i.image,
                    "quantity": i.quantity,
                    "price": i.price,
                    "variant": i.variant,
                    "subtotal": Decimal(i.price) * i.quantity,
                }
                for i in cart.items
            ],
            "applied_coupon": (
                {
                    "code": cart.coupon_code,
                    "discount_type": cart.coupon_type,
                    "discount_value": cart.coupon_value,
                }
                if cart.coupon_code
                else None
            ),
            "shipping_method": (
                {"name": cart.shipping_name, "price": cart.shipping_price}
                if cart.shipping_name
                else None
            ),
            "subtotal": totals.items_price,
            "discount": totals.discount_price,
            "shipping": totals.shipping_price,
            "total": totals.total_price,
            "items_count": sum(i.quantity for i in cart.items),
        }
