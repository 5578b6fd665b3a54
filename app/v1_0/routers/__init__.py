from .person_router import router as person_router
from .loan_router import router as loan_router
from .payment_router import router as payment_router
defined_routers = [
    person_router,
    loan_router,
    payment_router,
    ]
