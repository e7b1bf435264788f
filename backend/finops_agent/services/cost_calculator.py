"""Cost calculation service for cloud resources."""

from finops_agent.models.resource import ResourceCategory

HOURS_PER_MONTH = 730


class CostCalculator:
    """
    Pricing collaborator for the waste detector.

    Pure functions over static on-demand rates (US East). Every method
    returns an estimated monthly cost in USD rounded to cents.
    """

    # Hourly on-demand rates
    EC2_HOURLY_RATES = {
        "t2.micro": 0.0116,
        "t2.small": 0.023,
        "t2.medium": 0.0464,
        "t2.large": 0.0928,
        "t2.xlarge": 0.1856,
        "t3.micro": 0.0104,
        "t3.small": 0.0208,
        "t3.medium": 0.0416,
        "t3.large": 0.0832,
        "t3.xlarge": 0.1664,
        "m5.large": 0.096,
        "m5.xlarge": 0.192,
        "m5.2xlarge": 0.384,
        "m5.4xlarge": 0.768,
        "m6i.large": 0.096,
        "m6i.xlarge": 0.192,
        "c5.large": 0.085,
        "c5.xlarge": 0.17,
        "c5.2xlarge": 0.34,
        "r5.large": 0.126,
        "r5.xlarge": 0.252,
        "r5.2xlarge": 0.504,
    }
    EC2_FALLBACK_HOURLY = 0.1

    RDS_HOURLY_RATES = {
        "db.t3.micro": 0.017,
        "db.t3.small": 0.034,
        "db.t3.medium": 0.068,
        "db.t3.large": 0.136,
        "db.m5.large": 0.171,
        "db.m5.xlarge": 0.342,
        "db.m5.2xlarge": 0.684,
        "db.r5.large": 0.24,
        "db.r5.xlarge": 0.48,
        "db.r5.2xlarge": 0.96,
    }
    RDS_FALLBACK_HOURLY = 0.17

    CACHE_HOURLY_RATES = {
        "cache.t3.micro": 0.017,
        "cache.t3.small": 0.034,
        "cache.t3.medium": 0.068,
        "cache.m5.large": 0.142,
        "cache.m5.xlarge": 0.284,
        "cache.r5.large": 0.198,
        "cache.r5.xlarge": 0.396,
    }
    CACHE_FALLBACK_HOURLY = 0.068

    # Per GB-month rates
    EBS_GB_MONTH_RATES = {
        "gp2": 0.10,
        "gp3": 0.08,
        "io1": 0.125,
        "io2": 0.125,
        "st1": 0.045,
        "sc1": 0.025,
        "standard": 0.05,
    }
    SNAPSHOT_GB_MONTH = 0.05
    S3_GB_MONTH = {
        "standard": 0.023,
        "intelligent": 0.0025,
        "glacier": 0.004,
    }
    CLOUDWATCH_LOGS_STORED_GB = 0.03

    ALB_HOURLY = 0.0225
    ALB_LCU_HOURLY = 0.008
    UNATTACHED_EIP_HOURLY = 0.005

    LAMBDA_REQUEST = 0.0000002
    LAMBDA_GB_SECOND = 0.0000166667

    # One step down within the same family
    EC2_DOWNSIZE_MAP = {
        "t2.xlarge": "t2.large",
        "t2.large": "t2.medium",
        "t2.medium": "t2.small",
        "t2.small": "t2.micro",
        "t3.xlarge": "t3.large",
        "t3.large": "t3.medium",
        "t3.medium": "t3.small",
        "t3.small": "t3.micro",
        "m5.4xlarge": "m5.2xlarge",
        "m5.2xlarge": "m5.xlarge",
        "m5.xlarge": "m5.large",
        "m6i.xlarge": "m6i.large",
        "c5.2xlarge": "c5.xlarge",
        "c5.xlarge": "c5.large",
        "r5.2xlarge": "r5.xlarge",
        "r5.xlarge": "r5.large",
    }
    CACHE_DOWNSIZE_MAP = {
        "cache.t3.medium": "cache.t3.small",
        "cache.t3.small": "cache.t3.micro",
        "cache.m5.xlarge": "cache.m5.large",
        "cache.m5.large": "cache.t3.medium",
        "cache.r5.xlarge": "cache.r5.large",
        "cache.r5.large": "cache.t3.medium",
    }

    @staticmethod
    def calculate_ec2_cost(instance_type: str, count: int = 1) -> float:
        """
        Calculate monthly cost for EC2 instances.

        Args:
            instance_type: EC2 instance type (e.g. "t3.large")
            count: Number of instances

        Returns:
            Estimated monthly cost in USD
        """
        hourly = CostCalculator.EC2_HOURLY_RATES.get(instance_type, CostCalculator.EC2_FALLBACK_HOURLY)
        return round(hourly * HOURS_PER_MONTH * count, 2)

    @staticmethod
    def calculate_rds_cost(instance_class: str) -> float:
        """Calculate monthly cost for an RDS instance."""
        hourly = CostCalculator.RDS_HOURLY_RATES.get(instance_class, CostCalculator.RDS_FALLBACK_HOURLY)
        return round(hourly * HOURS_PER_MONTH, 2)

    @staticmethod
    def calculate_cache_cost(node_type: str, node_count: int = 1) -> float:
        """Calculate monthly cost for an ElastiCache cluster."""
        hourly = CostCalculator.CACHE_HOURLY_RATES.get(node_type, CostCalculator.CACHE_FALLBACK_HOURLY)
        return round(hourly * HOURS_PER_MONTH * node_count, 2)

    @staticmethod
    def calculate_load_balancer_cost(avg_lcus: float = 1.0) -> float:
        """Calculate monthly cost for an Application Load Balancer."""
        base = CostCalculator.ALB_HOURLY * HOURS_PER_MONTH
        lcu = CostCalculator.ALB_LCU_HOURLY * avg_lcus * HOURS_PER_MONTH
        return round(base + lcu, 2)

    @staticmethod
    def calculate_ebs_volume_cost(size_gb: float, volume_type: str = "gp2") -> float:
        """
        Calculate monthly cost for an EBS volume.

        Args:
            size_gb: Volume size in gigabytes
            volume_type: EBS volume type (gp2, gp3, io1, io2, st1, sc1, standard)

        Returns:
            Estimated monthly cost in USD
        """
        rate = CostCalculator.EBS_GB_MONTH_RATES.get(volume_type, CostCalculator.EBS_GB_MONTH_RATES["gp2"])
        return round(size_gb * rate, 2)

    @staticmethod
    def calculate_snapshot_cost(size_gb: float) -> float:
        """Calculate monthly cost for an EBS snapshot."""
        return round(size_gb * CostCalculator.SNAPSHOT_GB_MONTH, 2)

    @staticmethod
    def calculate_elastic_ip_cost() -> float:
        """Calculate monthly cost for an unattached Elastic IP."""
        return round(CostCalculator.UNATTACHED_EIP_HOURLY * HOURS_PER_MONTH, 2)

    @staticmethod
    def calculate_log_group_cost(stored_gb: float) -> float:
        """Calculate monthly storage cost for a CloudWatch log group."""
        return round(stored_gb * CostCalculator.CLOUDWATCH_LOGS_STORED_GB, 2)

    @staticmethod
    def calculate_s3_cost(size_gb: float, tier: str = "standard") -> float:
        """Calculate monthly storage cost for an S3 bucket in a storage tier."""
        rate = CostCalculator.S3_GB_MONTH.get(tier, CostCalculator.S3_GB_MONTH["standard"])
        return round(size_gb * rate, 2)

    @staticmethod
    def calculate_lambda_cost(memory_mb: float, avg_duration_ms: float, monthly_invocations: int) -> float:
        """
        Calculate monthly cost for a Lambda function.

        Args:
            memory_mb: Configured memory in MB
            avg_duration_ms: Average invocation duration in milliseconds
            monthly_invocations: Invocations per month

        Returns:
            Estimated monthly cost in USD
        """
        gb_seconds = (memory_mb / 1024) * (avg_duration_ms / 1000) * monthly_invocations
        request_cost = CostCalculator.LAMBDA_REQUEST * monthly_invocations
        compute_cost = CostCalculator.LAMBDA_GB_SECOND * gb_seconds
        return round(request_cost + compute_cost, 2)

    @staticmethod
    def smaller_instance_type(instance_type: str) -> str | None:
        """Return the next smaller EC2 type in the same family, if any."""
        return CostCalculator.EC2_DOWNSIZE_MAP.get(instance_type)

    @staticmethod
    def smaller_cache_node_type(node_type: str) -> str | None:
        """Return the next smaller ElastiCache node type, if any."""
        return CostCalculator.CACHE_DOWNSIZE_MAP.get(node_type)

    @staticmethod
    def estimate_monthly_cost(
        resource_type: ResourceCategory | str,
        size_or_class: str | float | None = None,
        utilization: float | None = None,
        quantity: float = 1,
    ) -> float:
        """
        Estimate the monthly cost of one resource.

        Args:
            resource_type: Resource category
            size_or_class: Instance type/class, node type, volume type or storage tier
            utilization: Average LCUs for load balancers; ignored elsewhere
            quantity: Instance or node count, or size in GB for storage

        Returns:
            Estimated monthly cost in USD
        """
        category = ResourceCategory(resource_type)

        if category in (ResourceCategory.INSTANCES, ResourceCategory.AUTOSCALING_GROUPS):
            return CostCalculator.calculate_ec2_cost(str(size_or_class), int(quantity))
        if category == ResourceCategory.RDS_INSTANCES:
            return CostCalculator.calculate_rds_cost(str(size_or_class))
        if category == ResourceCategory.CACHE_CLUSTERS:
            return CostCalculator.calculate_cache_cost(str(size_or_class), int(quantity))
        if category == ResourceCategory.LOAD_BALANCERS:
            return CostCalculator.calculate_load_balancer_cost(utilization if utilization is not None else 1.0)
        if category == ResourceCategory.VOLUMES:
            return CostCalculator.calculate_ebs_volume_cost(quantity, str(size_or_class or "gp2"))
        if category == ResourceCategory.SNAPSHOTS:
            return CostCalculator.calculate_snapshot_cost(quantity)
        if category == ResourceCategory.ELASTIC_IPS:
            return CostCalculator.calculate_elastic_ip_cost()
        if category == ResourceCategory.LOG_GROUPS:
            return CostCalculator.calculate_log_group_cost(quantity)
        if category == ResourceCategory.S3_BUCKETS:
            return CostCalculator.calculate_s3_cost(quantity, str(size_or_class or "standard"))
        raise ValueError(f"No monthly estimate for {category.value}; use calculate_lambda_cost")
