from django.urls import path
from . import views

app_name = 'lending'

urlpatterns = [
    # Members
    path('items/', views.item_list, name='item-list'),
    path('items/<int:item_id>/borrow/', views.borrow_item, name='borrow-item'),
    path('loans/', views.loan_list, name='loan-list'),
    path('loans/<int:loan_id>/', views.loan_detail, name='loan-detail'),
    path('loans/<int:loan_id>/return/', views.return_loan, name='return-loan'),

    # Staff
    path('loans/overdue/', views.overdue_loans, name='overdue-loans'),
    path('loans/create/', views.loan_create, name='loan-create'),
    path('loans/<int:loan_id>/update/', views.loan_update, name='loan-update'),
    path('loans/<int:loan_id>/delete/', views.loan_delete, name='loan-delete'),
    path('items/<int:item_id>/copies/', views.item_set_total, name='item-set-total'),
    path('members/', views.member_list, name='member-list'),
]
