"""
Seeds a development database with an admin, a demo customer and a small
catalog. Safe to run repeatedly: existing rows are left untouched.

    python seed.py
"""
import os
import sys

# Add 'backend' folder to Python path
sys.path.append(os.path.abspath(os.path.dirname(__file__)))

from database import SessionLocal, init_db
from models.users import User, UserAddress, UserPreferences, Role
from models.product import Product
from utils.hashing import get_password_hash

ADMIN_EMAIL = "admin@ecommerce.com"
ADMIN_PASSWORD = "AdminPass123!"
DEMO_EMAIL = "user@ecommerce.com"
DEMO_PASSWORD = "UserPass123!"


def _picsum(seed: str, size: int) -> str:
    return f"https://picsum.photos/seed/{seed}/{size}/{size}"


# title, description, price, discount, category, brand, rating, stock, image seed
SAMPLE_PRODUCTS = [
    ("iPhone 15 Pro", "The latest iPhone with A17 Pro chip, titanium design, and advanced camera system.",
     999.99, 5, "smartphones", "Apple", 4.8, 50, "iphone15"),
    ("Samsung Galaxy S24 Ultra", "Premium Android smartphone with S Pen, 200MP camera, and AI features.",
     1199.99, 10, "smartphones", "Samsung", 4.7, 35, "s24ultra"),
    ('MacBook Pro 16"', "Powerful laptop with M3 Max chip, 36GB RAM, and Liquid Retina XDR display.",
     2499.99, 0, "laptops", "Apple", 4.9, 20, "macbookpro"),
    ("Dell XPS 15", "Ultra-thin laptop with Intel Core i9, NVIDIA RTX 4070, and 4K OLED display.",
     1899.99, 15, "laptops", "Dell", 4.6, 25, "dellxps"),
    ("Chanel No. 5", "Timeless feminine fragrance with floral aldehydic notes.",
     135.00, 0, "fragrances", "Chanel", 4.9, 100, "chanel5"),
    ("La Mer Moisturizing Cream", "Luxurious moisturizer with Miracle Broth for radiant skin.",
     380.00, 0, "skincare", "La Mer", 4.7, 40, "lamer"),
    ("Organic Avocados (6 pack)", "Fresh, organic Hass avocados perfect for guacamole or toast.",
     8.99, 10, "groceries", "Organic Farms", 4.5, 200, "avocados"),
    ("Modern Leather Sofa", "Elegant 3-seater leather sofa with solid wood frame.",
     1299.99, 20, "furniture", "ModernHome", 4.6, 10, "sofa"),
    ("Classic White T-Shirt", "100% organic cotton t-shirt with perfect fit.",
     29.99, 0, "tops", "BasicWear", 4.4, 500, "tshirt"),
    ("Rolex Submariner", "Iconic diving watch with automatic movement and ceramic bezel.",
     8999.99, 0, "mens-watches", "Rolex", 4.95, 5, "rolex"),
]


def _ensure_user(session, email, password, first_name, last_name, role):
    user = session.query(User).filter(User.email == email).first()
    if user:
        print(f"User already exists: {email}")
        return user

    user = User(
        email=email,
        password_hash=get_password_hash(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
        email_verified=True,
        is_active=True,
    )
    user.preferences = UserPreferences()
    session.add(user)
    session.flush()
    print(f"User created: {email}")
    return user


def seed():
    init_db()
    session = SessionLocal()
    try:
        _ensure_user(session, ADMIN_EMAIL, ADMIN_PASSWORD, "Admin", "User", Role.ADMIN)
        demo = _ensure_user(session, DEMO_EMAIL, DEMO_PASSWORD, "John", "Doe", Role.USER)

        if not demo.addresses:
            demo.addresses.append(UserAddress(
                label="Home",
                first_name="John",
                last_name="Doe",
                address="123 Main Street",
                city="New York",
                state="NY",
                zip_code="10001",
                country="USA",
                phone="+1 555 123 4567",
                is_default=True,
            ))

        existing_titles = {t for (t,) in session.query(Product.title).all()}
        created = 0
        for title, description, price, discount, category, brand, rating, stock, image in SAMPLE_PRODUCTS:
            if title in existing_titles:
                continue
            session.add(Product(
                title=title,
                description=description,
                price=price,
                discount_percentage=discount,
                category=category,
                brand=brand,
                rating=rating,
                stock=stock,
                thumbnail=_picsum(image, 400),
                images=[_picsum(f"{image}-1", 800), _picsum(f"{image}-2", 800)],
            ))
            created += 1

        session.commit()
        print(f"Products inserted: {created}")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    seed()
