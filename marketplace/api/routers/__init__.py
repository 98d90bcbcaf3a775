from . import admin
from . import auth
from . import cart
from . import orders
from . import products
from . import seller
