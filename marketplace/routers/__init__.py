from . import admin, auth, customization, orders, payments, products, roles, sellers, users

all_routers = [
    auth.router,
    users.router,
    products.router,
    orders.router,
    payments.router,
    sellers.router,
    roles.router,
    customization.router,
    admin.router,
]
