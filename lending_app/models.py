from django.contrib.auth.hashers import check_password, make_password
from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class SoftDeleteQuerySet(models.QuerySet):
    def active(self):
        return self.filter(deleted_at__isnull=True)


class SoftDeleteModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        abstract = True

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self, when=None):
        self.deleted_at = when or timezone.now()
        self.save(update_fields=["deleted_at", "updated_at"])


class Item(SoftDeleteModel):
    title = models.CharField(max_length=200)
    author = models.CharField(max_length=100)
    isbn = models.CharField(max_length=32, unique=True)
    total_copies = models.PositiveIntegerField(default=0)
    available_copies = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(available_copies__lte=F("total_copies")),
                name="item_available_lte_total",
            ),
        ]

    def __str__(self):
        return self.title

    def count_active_loans(self):
        return self.loans.active_loans().count()


class Member(SoftDeleteModel):
    class Role(models.TextChoices):
        ADMIN = "ADMIN", "Admin"
        MEMBER = "MEMBER", "Member"

    name = models.CharField(max_length=100)
    email = models.EmailField(unique=True)
    password = models.CharField(max_length=128)
    role = models.CharField(max_length=10, choices=Role.choices, default=Role.MEMBER)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return self.name

    def set_password(self, raw_password):
        self.password = make_password(raw_password)

    def check_password(self, raw_password):
        return check_password(raw_password, self.password)


class LoanQuerySet(SoftDeleteQuerySet):
    def active_loans(self):
        """Loans not yet returned and not soft-deleted."""
        return self.active().filter(returned_at__isnull=True)

    def overdue(self, now=None):
        return self.active_loans().filter(due_date__lt=now or timezone.now())


class Loan(SoftDeleteModel):
    member = models.ForeignKey(Member, on_delete=models.PROTECT, related_name="loans")
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="loans")
    borrowed_at = models.DateTimeField(default=timezone.now)
    due_date = models.DateTimeField()
    returned_at = models.DateTimeField(null=True, blank=True)

    objects = LoanQuerySet.as_manager()

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["member", "returned_at"], name="loan_member_returned_idx"),
        ]

    @property
    def is_active(self):
        return self.returned_at is None and self.deleted_at is None

    def is_overdue(self, now=None):
        return self.is_active and (now or timezone.now()) > self.due_date

    def __str__(self):
        return f"{self.member.name} → {self.item.title}"
