import time
import numpy as np
import concurrent.futures
from datetime import datetime, timedelta, timezone
from adaptive_auth.governance.audit import AuditLogger, InMemoryAuditStore
from adaptive_auth.governance.policies import PolicyDecisionPoint
from adaptive_auth.orchestration import RiskEvaluationService
from adaptive_auth.signals import (
    DeviceSignal,
    GeoPoint,
    KeystrokeBaseline,
    KeystrokeSample,
    LastLogin,
    LocationFix,
    SignalContext,
)

def create_mock_context():
    now = datetime.now(timezone.utc)
    history = tuple(
        LocationFix(lat=40.7128 + i * 0.01, lon=-74.0060, timestamp=now - timedelta(days=i + 1))
        for i in range(50)
    )
    return SignalContext(
        user_id="user_bench_001",
        failed_attempts=1,
        device=DeviceSignal(device_id="device_bench_001", known_devices=frozenset({"device_bench_001"})),
        location=GeoPoint(lat=51.5074, lon=-0.1278),
        location_history=history,
        keystroke_sample=KeystrokeSample(mean_inter_key_interval=180.0, sample_count=12),
        keystroke_baseline=KeystrokeBaseline(mean=150.0, stddev=20.0, sample_count=30),
        timestamp=now,
        last_login=LastLogin(timestamp=now - timedelta(hours=2), location=GeoPoint(lat=40.7128, lon=-74.0060)),
    )

def create_service():
    decision_point = PolicyDecisionPoint(audit_logger=AuditLogger(store=InMemoryAuditStore()))
    return RiskEvaluationService(decision_point=decision_point)

def run_latency_benchmark(iterations=1000):
    service = create_service()
    context = create_mock_context()
    
    print(f"--- Latency Benchmark ({iterations} iterations) ---")
    
    latencies = []
    
    # Warmup
    service.evaluate(context.user_id, context)
    
    for i in range(iterations):
        start_time = time.perf_counter()
        service.evaluate(context.user_id, context)
        end_time = time.perf_counter()
        
        latency_ms = (end_time - start_time) * 1000
        latencies.append(latency_ms)
        
        if (i + 1) % 200 == 0:
            print(f"  Completed {i + 1}/{iterations} iterations")
            
    print("\nLatency Results:")
    print(f"  Mean:   {np.mean(latencies):.3f} ms")
    print(f"  Median: {np.median(latencies):.3f} ms")
    print(f"  P95:    {np.percentile(latencies, 95):.3f} ms")
    print(f"  P99:    {np.percentile(latencies, 99):.3f} ms")
    print("-" * 40)
    return latencies

def run_throughput_benchmark(total_requests=5000, concurrent_users=10):
    service = create_service()
    context = create_mock_context()
    
    print(f"\n--- Throughput Benchmark ({total_requests} evaluations, {concurrent_users} threads) ---")
    
    start_time = time.perf_counter()
    
    with concurrent.futures.ThreadPoolExecutor(max_workers=concurrent_users) as executor:
        futures = [executor.submit(service.evaluate, context.user_id, context) for _ in range(total_requests)]
        concurrent.futures.wait(futures)
        
    end_time = time.perf_counter()
    total_time = end_time - start_time
    
    throughput = total_requests / total_time
    
    print(f"\nThroughput Results:")
    print(f"  Total Time: {total_time:.2f} s")
    print(f"  Throughput: {throughput:.2f} evaluations/sec")
    print("-" * 40)
    return throughput

if __name__ == "__main__":
    run_latency_benchmark()
    run_throughput_benchmark()
