from django.contrib import admin
from .ledger import InventoryLedger
from .models import Item, Member, Loan

COUNTER_FIELDS = ["total_copies", "available_copies"]


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ("title", "author", "isbn", "total_copies", "available_copies", "deleted_at")
    search_fields = ("title", "author", "isbn")
    readonly_fields = ("available_copies",)

    def save_model(self, request, obj, form, change):
        if not change:
            # New items start with every copy on the shelf
            obj.available_copies = obj.total_copies
            super().save_model(request, obj, form, change)
            return

        # The counters are only ever written by the ledger
        obj.save(update_fields=[
            field.name for field in obj._meta.concrete_fields
            if not field.primary_key and field.name not in COUNTER_FIELDS
        ])
        if obj.total_copies != form.initial["total_copies"]:
            InventoryLedger().set_total_copies(obj.pk, obj.total_copies)
        obj.refresh_from_db(fields=COUNTER_FIELDS)


@admin.register(Member)
class MemberAdmin(admin.ModelAdmin):
    list_display = ("name", "email", "role", "deleted_at")
    list_filter = ("role",)
    search_fields = ("name", "email")
    exclude = ("password",)


@admin.register(Loan)
class LoanAdmin(admin.ModelAdmin):
    list_display = ("member", "item", "borrowed_at", "due_date", "returned_at", "deleted_at")
    list_select_related = ("member", "item")
    list_filter = ("returned_at",)
