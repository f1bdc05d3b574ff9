from django.db import models


class DataQualityAlert(models.Model):
    SEVERITY_CHOICES = [
        ("warning", "Warning"),
        ("critical", "Critical"),
    ]

    code = models.CharField(max_length=120, unique=True)
    category = models.CharField(max_length=60)
    message = models.TextField()
    model_label = models.CharField(max_length=120, blank=True)
    record_id = models.CharField(max_length=64, blank=True)
    severity = models.CharField(max_length=20, choices=SEVERITY_CHOICES, default="warning")
    detected_at = models.DateTimeField(auto_now_add=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    auto_resolved = models.BooleanField(default=False)

    class Meta:
        ordering = ["-detected_at"]

    def __str__(self):
        return f"{self.category}: {self.message[:50]}"
