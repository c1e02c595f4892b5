from models import users, product, cart, order, wishlist, log  # noqa: F401
