from django.contrib.auth.models import BaseUserManager


class UserManager(BaseUserManager):
    """
    Creates users keyed by email.

    Accounts created without a password (seed data, service accounts) get
    an unusable one and can only connect with a token minted for them.
    """

    use_in_migrations = True

    def _build(self, email, password, **fields):
        if not email:
            raise ValueError("Email is required to create a user")

        user = self.model(email=self.normalize_email(email), **fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **fields):
        fields.setdefault("is_staff", False)
        fields.setdefault("is_superuser", False)
        return self._build(email, password, **fields)

    def create_superuser(self, email, password=None, **fields):
        fields.setdefault("is_staff", True)
        fields.setdefault("is_superuser", True)

        for flag in ("is_staff", "is_superuser"):
            if fields[flag] is not True:
                raise ValueError(f"Superuser must have {flag}=True")

        return self._build(email, password, **fields)
